"""
repositories/message.py
-----------------------
Persistence contract over the Message entity.

This layer knows nothing about blobs: keys are plain strings passed through.
It owns the one state transition a message has (created -> responded) and
makes it a single conditional UPDATE, so a reader can never observe a
response recorded while audio_key is still set, and two racing responders
cannot both win.
"""

from sqlalchemy import delete, select, update

from voicerelay.core.exceptions import Conflict, NotFound
from voicerelay.db.base import utcnow
from voicerelay.models.message import Message
from voicerelay.repositories.base import SessionRepository


class MessageRepository(SessionRepository):

    async def create(self, user_id: str, username: str, audio_key: str) -> Message:
        message = Message(user_id=user_id, username=username, audio_key=audio_key)
        self.session.add(message)
        async with self._guard("create"):
            await self.session.flush()
            await self.session.refresh(message)
        return message

    async def get_by_id(self, message_id: str) -> Message | None:
        async with self._guard("get_by_id"):
            result = await self.session.execute(
                select(Message).where(Message.id == message_id)
            )
            return result.scalar_one_or_none()

    async def list_for_user(self, user_id: str) -> list[Message]:
        """Messages owned by user_id, newest first."""
        async with self._guard("list_for_user"):
            result = await self.session.execute(
                select(Message)
                .where(Message.user_id == user_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
            )
            return list(result.scalars().all())

    async def list_all(self) -> list[Message]:
        """Every message, newest first."""
        async with self._guard("list_all"):
            result = await self.session.execute(
                select(Message).order_by(Message.created_at.desc(), Message.id.desc())
            )
            return list(result.scalars().all())

    async def update_for_response(
        self,
        message_id: str,
        moderator_name: str,
        *,
        audio_key: str | None = None,
        text: str | None = None,
    ) -> Message:
        """
        Record a moderator's response in one write.

        Sets responded, the single response field, responded_at, responded_by
        and clears audio_key. Only applies while responded is still false.

        Raises:
            ValueError: unless exactly one of audio_key / text is given.
            NotFound:   no message with this id.
            Conflict:   the message was already responded to.
        """
        if (audio_key is None) == (text is None):
            raise ValueError("Exactly one of audio_key or text is required")

        async with self._guard("update_for_response"):
            result = await self.session.execute(
                update(Message)
                .where(Message.id == message_id, Message.responded.is_(False))
                .values(
                    responded=True,
                    response_audio_key=audio_key,
                    response_text=text,
                    responded_at=utcnow(),
                    responded_by=moderator_name,
                    audio_key=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if await self.get_by_id(message_id) is None:
                    raise NotFound(f"Message '{message_id}' not found")
                raise Conflict()

            reloaded = await self.session.execute(
                select(Message)
                .where(Message.id == message_id)
                .execution_options(populate_existing=True)
            )
            return reloaded.scalar_one()

    async def delete(self, message_id: str) -> list[str]:
        """
        Hard-delete a message.

        Returns the blob keys held by the row as it was when deleted, which
        can differ from an earlier read if a response landed in between.
        """
        async with self._guard("delete"):
            result = await self.session.execute(
                delete(Message)
                .where(Message.id == message_id)
                .returning(Message.audio_key, Message.response_audio_key)
                .execution_options(synchronize_session=False)
            )
            row = result.one_or_none()
        if row is None:
            raise NotFound(f"Message '{message_id}' not found")
        return [key for key in row if key]
