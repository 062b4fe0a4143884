"""
models/user.py
--------------
User ORM model with roles.

Role design:
  - 'moderator': Can list every message and respond to any of them.
  - 'user':      Can submit, list and delete their own messages.

username is the login handle and is matched case-sensitively. It may be an
email address. The hashed_password column stores bcrypt hashes only; plain
text is never stored and never logged.
"""

from enum import Enum as PyEnum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voicerelay.db.base import Base, TimestampMixin, generate_uuid


class UserRole(str, PyEnum):
    moderator = "moderator"
    user = "user"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(
        String(150), unique=True, nullable=False, index=True
    )
    display_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.user.value
    )

    messages: Mapped[list["Message"]] = relationship(  # noqa: F821
        "Message", back_populates="user"
    )

    @property
    def is_moderator(self) -> bool:
        return self.role == UserRole.moderator.value

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username} role={self.role}>"
