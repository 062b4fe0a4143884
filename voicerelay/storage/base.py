"""
storage/base.py
---------------
Blob store contract consumed by the message lifecycle service.

Keys are opaque outside this package: callers store whatever put() returns
and hand it back unchanged. delete() reports a DeleteOutcome instead of
raising, because blob reclamation never decides whether the surrounding
operation succeeds; the outcome is only logged.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Awaitable, TypeVar

from voicerelay.core.exceptions import StorageUnavailable
from voicerelay.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

KEY_PREFIX = "audio/"

_EXTENSIONS = {
    "audio/mp4": ".m4a",
    "audio/m4a": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/3gpp": ".3gp",
}


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


def new_key(content_type: str) -> str:
    """Fresh, never-reused key; the extension only helps players sniff format."""
    media_type = content_type.split(";")[0].strip().lower()
    return f"{KEY_PREFIX}{uuid.uuid4().hex}{_EXTENSIONS.get(media_type, '.m4a')}"


def content_type_for(key: str) -> str:
    for media_type, ext in _EXTENSIONS.items():
        if key.endswith(ext):
            return media_type
    return "application/octet-stream"


class BlobStore(ABC):

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout

    async def _bounded(self, awaitable: Awaitable[T], operation: str, key: str) -> T:
        """Await a storage call, converting a timeout into StorageUnavailable."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Blob store call timed out",
                store=type(self).__name__,
                operation=operation,
                key=key,
                timeout=self.timeout,
            )
            raise StorageUnavailable() from exc

    @abstractmethod
    async def put(self, data: bytes, content_type: str) -> str:
        """Durably store data and return its new key."""

    @abstractmethod
    async def signed_get_url(self, key: str, ttl: int) -> str:
        """Time-limited URL from which the blob can be fetched without auth."""

    @abstractmethod
    async def delete(self, key: str) -> DeleteOutcome:
        """Remove the blob. Missing keys are ALREADY_ABSENT, never an error."""

    async def close(self) -> None:
        return None
