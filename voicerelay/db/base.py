"""
db/base.py
----------
Declarative base and shared mixins.

TimestampMixin: Adds created_at / updated_at columns to any model.
                Values are stamped application-side with microsecond
                precision so newest-first ordering is stable even on
                backends whose CURRENT_TIMESTAMP only has second resolution.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


def generate_uuid() -> str:
    return str(uuid.uuid4())
