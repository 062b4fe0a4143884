"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication, authorisation
and service wiring.

Flow:
  1. OAuth2PasswordBearer extracts the Bearer token from the Authorization header.
  2. decode_access_token validates and parses the JWT.
  3. get_current_user fetches the full User record from the DB, verifying the
     token's sub (user_id) and role against persisted data.
  4. get_current_moderator layers a role check on top of get_current_user.

Identity comes from the token only; no route accepts a user id or role from
the request body.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicerelay.core.logging import get_logger
from voicerelay.core.security import decode_access_token
from voicerelay.db.session import get_db
from voicerelay.models.user import User
from voicerelay.services.message_service import MessageLifecycleService
from voicerelay.storage.base import BlobStore

logger = get_logger(__name__)

# tokenUrl must match the login endpoint path
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Decode the JWT, then load and return the full User from the database.
    Raises 401 if the token is invalid or the user no longer exists.
    """
    try:
        payload = decode_access_token(token)
        user_id: str = payload.get("sub")
        role: str = payload.get("role")
        if not user_id or not role:
            raise _CREDENTIALS_EXCEPTION
    except JWTError as exc:
        logger.warning("JWT decode failed", error=str(exc))
        raise _CREDENTIALS_EXCEPTION

    # Re-verify against DB so deleted users and stale roles are rejected
    result = await db.execute(
        select(User).where(User.id == user_id, User.role == role)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("User from valid JWT not found in DB", user_id=user_id)
        raise _CREDENTIALS_EXCEPTION

    return user


async def get_current_moderator(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Extends get_current_user with a moderator role check.
    Raises 403 if the authenticated user is not a moderator.
    """
    if not current_user.is_moderator:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only moderators can respond",
        )
    return current_user


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_message_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
) -> MessageLifecycleService:
    return MessageLifecycleService(db, blob_store)
