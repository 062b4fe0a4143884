"""
api/routes/messages.py
----------------------
Voice message endpoints.

POST   /messages                     — Upload a recording (multipart field "audio")
GET    /messages                     — Moderators: every message. Users: their own.
POST   /messages/{id}/respond-audio  — Moderator replies with a recording
POST   /messages/{id}/respond-text   — Moderator replies with text
DELETE /messages/{id}                — Owner deletes a message and its audio
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile, status

from voicerelay.core.config import settings
from voicerelay.core.exceptions import StorageUnavailable
from voicerelay.core.logging import get_logger
from voicerelay.dependencies import (
    get_current_moderator,
    get_current_user,
    get_message_service,
)
from voicerelay.models.user import User
from voicerelay.schemas.message import (
    MessageRead,
    MessageSubmitted,
    TextResponseCreate,
)
from voicerelay.services.message_service import MessageLifecycleService

logger = get_logger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


async def _read_upload(upload: UploadFile) -> bytes:
    # One byte past the limit is enough for the service to reject it
    try:
        return await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    finally:
        await upload.close()


@router.post(
    "",
    response_model=MessageSubmitted,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a voice message",
)
async def submit_message(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
    audio: UploadFile = File(..., description="Audio recording, at most 5 MB"),
) -> MessageSubmitted:
    """
    Store the recording and create a pending message.
    Rejects empty, oversized and non-audio uploads with 400.
    """
    data = await _read_upload(audio)
    message = await service.submit_message(current_user, data, audio.content_type)

    url = None
    try:
        url = await service.get_playback_url(message.audio_key)
    except StorageUnavailable:
        logger.warning("Could not sign playback URL", message_id=message.id)

    return MessageSubmitted(id=message.id, key=message.audio_key, url=url)


@router.get(
    "",
    response_model=list[MessageRead],
    summary="List messages visible to the caller, newest first",
)
async def list_messages(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
) -> list[MessageRead]:
    messages = await service.list_messages(current_user)
    return [MessageRead.model_validate(m) for m in messages]


@router.post(
    "/{message_id}/respond-audio",
    response_model=MessageRead,
    summary="Moderator: respond with a recording",
)
async def respond_audio(
    message_id: str,
    moderator: Annotated[User, Depends(get_current_moderator)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
    audio: UploadFile = File(..., description="Audio recording, at most 5 MB"),
) -> MessageRead:
    """
    Record an audio reply. The user's original recording is deleted once the
    reply is saved. A message can only be responded to once (409 after that).
    """
    data = await _read_upload(audio)
    message = await service.respond_with_audio(
        moderator, message_id, data, audio.content_type
    )
    return MessageRead.model_validate(message)


@router.post(
    "/{message_id}/respond-text",
    response_model=MessageRead,
    summary="Moderator: respond with text",
)
async def respond_text(
    message_id: str,
    body: TextResponseCreate,
    moderator: Annotated[User, Depends(get_current_moderator)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
) -> MessageRead:
    message = await service.respond_with_text(moderator, message_id, body.text)
    return MessageRead.model_validate(message)


@router.delete(
    "/{message_id}",
    summary="Delete one of your own messages",
)
async def delete_message(
    message_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[MessageLifecycleService, Depends(get_message_service)],
) -> dict:
    await service.delete_message(current_user, message_id)
    return {"detail": "Message deleted"}
