"""
models/__init__.py
------------------
Re-export all models so table creation can import Base and discover
all tables via a single import:

    from voicerelay.models import Base
"""

from voicerelay.db.base import Base
from voicerelay.models.user import User, UserRole
from voicerelay.models.message import Message

__all__ = ["Base", "User", "UserRole", "Message"]
