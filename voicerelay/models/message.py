"""
models/message.py
-----------------
Voice message model.

One row per submitted recording. The row moves through exactly one
transition, created -> responded, or is hard-deleted by its owner.

Column invariants (enforced by MessageRepository.update_for_response):
  - responded = false  → response_audio_key and response_text are both NULL
  - responded = true   → exactly one of them is set, audio_key is NULL,
                         responded_at and responded_by are set

username is a snapshot of the owner's handle at submission time, kept so
moderators can list messages without a JOIN.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voicerelay.db.base import Base, generate_uuid, utcnow


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    username: Mapped[str] = mapped_column(String(150), nullable=False)
    audio_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    responded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    response_audio_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    response_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    responded_by: Mapped[str | None] = mapped_column(String(150), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="messages")  # noqa: F821

    def blob_keys(self) -> list[str]:
        """Every blob this message currently references."""
        return [k for k in (self.audio_key, self.response_audio_key) if k]

    def __repr__(self) -> str:
        return f"<Message id={self.id} user_id={self.user_id} responded={self.responded}>"
