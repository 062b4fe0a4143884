"""
api/routes/playback.py
----------------------
Audio playback endpoints.

GET /playback-url/{key}  — Signed, time-limited URL for a blob key.
GET /blobs/{key}?token=  — Serves a blob from the local store. Answers 404
                           unless STORAGE_BACKEND=local; S3 URLs point
                           straight at the bucket.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from voicerelay.core.config import settings
from voicerelay.dependencies import (
    get_blob_store,
    get_current_user,
    get_message_service,
)
from voicerelay.models.user import User
from voicerelay.schemas.message import PlaybackUrl
from voicerelay.services.message_service import MessageLifecycleService
from voicerelay.storage.base import BlobStore, content_type_for
from voicerelay.storage.local import LocalBlobStore

router = APIRouter(tags=["Playback"])


@router.get(
    "/playback-url/{key:path}",
    response_model=PlaybackUrl,
    summary="Get a signed playback URL for an audio key",
)
async def playback_url(
    key: str,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
) -> PlaybackUrl:
    url = await service.get_playback_url(key)
    return PlaybackUrl(url=url, expires_in=settings.PLAYBACK_URL_TTL_SECONDS)


@router.get(
    "/blobs/{key:path}",
    summary="Fetch audio through a signed local URL",
    response_class=Response,
)
async def fetch_blob(
    key: str,
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    token: str = Query(..., description="Signature from /playback-url"),
) -> Response:
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not blob_store.verify(key, token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired playback link",
        )
    data = await blob_store.read(key)
    return Response(
        content=data,
        media_type=content_type_for(key),
        headers={"Cache-Control": "private, max-age=60"},
    )
