"""
services/message_service.py
---------------------------
Message lifecycle: submit, list, respond, delete, playback.

This is the only place that touches both the message table and the blob
store, and the ordering here is what keeps them consistent:

  submit   store blob  → insert record → commit
  respond  read record → store response blob → conditional update → commit
           → best-effort delete of the original recording
  delete   check owner → best-effort delete of every referenced blob
           → delete record → commit → best-effort delete of any blob the
           removed row gained since it was read

A record never points at a blob that was not stored first. The reverse, a
stored blob no record points at, is tolerated when a record write fails.
Blob deletions never fail the operation that triggered them; their outcome
is logged and nothing else.

Role and ownership checks are repeated here on every call even though the
routes gate on them too.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicerelay.core.config import settings
from voicerelay.core.exceptions import (
    BadInput,
    Conflict,
    Forbidden,
    NotFound,
    StorageUnavailable,
)
from voicerelay.core.logging import get_logger
from voicerelay.models.message import Message
from voicerelay.models.user import User
from voicerelay.repositories.message import MessageRepository
from voicerelay.storage.base import BlobStore, DeleteOutcome

logger = get_logger(__name__)


class MessageLifecycleService:

    def __init__(
        self,
        db: AsyncSession,
        blob_store: BlobStore,
        max_upload_bytes: int = settings.MAX_UPLOAD_BYTES,
        playback_ttl: int = settings.PLAYBACK_URL_TTL_SECONDS,
    ) -> None:
        self.db = db
        self.blob_store = blob_store
        self.messages = MessageRepository(db)
        self.max_upload_bytes = max_upload_bytes
        self.playback_ttl = playback_ttl

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _validate_audio(self, data: bytes, content_type: str | None) -> None:
        if not data:
            raise BadInput("No audio file provided")
        if len(data) > self.max_upload_bytes:
            raise BadInput(
                f"Audio file exceeds the {self.max_upload_bytes} byte limit"
            )
        if not (content_type or "").lower().startswith("audio/"):
            raise BadInput("Only audio files allowed")

    @staticmethod
    def _require_moderator(user: User) -> None:
        if not user.is_moderator:
            raise Forbidden("Only moderators can respond")

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            logger.error("Commit failed", error=str(exc))
            raise StorageUnavailable() from exc

    async def _reclaim(self, key: str, reason: str, message_id: str) -> DeleteOutcome:
        """Best-effort blob delete. Never raises."""
        try:
            outcome = await self.blob_store.delete(key)
        except Exception as exc:
            logger.error(
                "Blob delete raised",
                key=key,
                message_id=message_id,
                reason=reason,
                error=str(exc),
            )
            return DeleteOutcome.FAILED

        if outcome is DeleteOutcome.FAILED:
            logger.warning(
                "Blob not reclaimed", key=key, message_id=message_id, reason=reason
            )
        else:
            logger.info(
                "Blob reclaimed",
                key=key,
                message_id=message_id,
                reason=reason,
                outcome=outcome.value,
            )
        return outcome

    async def _load_open(self, message_id: str) -> Message:
        message = await self.messages.get_by_id(message_id)
        if message is None:
            raise NotFound(f"Message '{message_id}' not found")
        if message.responded:
            raise Conflict()
        return message

    # ── Operations ────────────────────────────────────────────────────────────

    async def submit_message(
        self, user: User, data: bytes, content_type: str | None
    ) -> Message:
        """Store the recording, then create the record that references it."""
        self._validate_audio(data, content_type)
        key = await self.blob_store.put(data, content_type)
        try:
            message = await self.messages.create(
                user_id=user.id, username=user.username, audio_key=key
            )
            await self._commit()
        except StorageUnavailable:
            logger.warning("Record write failed, blob orphaned", key=key, user_id=user.id)
            raise

        logger.info(
            "Message submitted", message_id=message.id, user_id=user.id, size=len(data)
        )
        return message

    async def list_messages(self, user: User) -> list[Message]:
        """Moderators see every message, users only their own; newest first."""
        if user.is_moderator:
            return await self.messages.list_all()
        return await self.messages.list_for_user(user.id)

    async def respond_with_audio(
        self,
        moderator: User,
        message_id: str,
        data: bytes,
        content_type: str | None,
    ) -> Message:
        self._require_moderator(moderator)
        self._validate_audio(data, content_type)
        message = await self._load_open(message_id)
        original_key = message.audio_key

        response_key = await self.blob_store.put(data, content_type)
        try:
            updated = await self.messages.update_for_response(
                message_id, moderator.username, audio_key=response_key
            )
            await self._commit()
        except (Conflict, NotFound, StorageUnavailable):
            # Response was not recorded: lost a race, or the write failed
            await self._reclaim(response_key, "response_rejected", message_id)
            raise

        logger.info(
            "Audio response recorded", message_id=message_id, moderator_id=moderator.id
        )
        if original_key:
            await self._reclaim(original_key, "responded", message_id)
        return updated

    async def respond_with_text(
        self, moderator: User, message_id: str, text: str
    ) -> Message:
        self._require_moderator(moderator)
        text = (text or "").strip()
        if not text:
            raise BadInput("Response text must not be empty")
        message = await self._load_open(message_id)
        original_key = message.audio_key

        updated = await self.messages.update_for_response(
            message_id, moderator.username, text=text
        )
        await self._commit()

        logger.info(
            "Text response recorded", message_id=message_id, moderator_id=moderator.id
        )
        if original_key:
            await self._reclaim(original_key, "responded", message_id)
        return updated

    async def delete_message(self, user: User, message_id: str) -> None:
        """Owner-only hard delete. Blob failures do not block the record delete."""
        message = await self.messages.get_by_id(message_id)
        if message is None:
            raise NotFound(f"Message '{message_id}' not found")
        if message.user_id != user.id:
            raise Forbidden("Only the owner can delete this message")

        reclaimed = message.blob_keys()
        for key in reclaimed:
            await self._reclaim(key, "deleted", message_id)

        removed_keys = await self.messages.delete(message_id)
        await self._commit()
        # A response committed after the read above still needs its blob gone
        for key in removed_keys:
            if key not in reclaimed:
                await self._reclaim(key, "deleted", message_id)
        logger.info("Message deleted", message_id=message_id, user_id=user.id)

    async def get_playback_url(self, key: str) -> str:
        """
        Time-limited retrieval URL for a blob key.

        Any authenticated caller may ask for any key; the key itself is the
        access boundary.
        """
        if not key:
            raise BadInput("Blob key is required")
        return await self.blob_store.signed_get_url(key, self.playback_ttl)
