"""
repositories/base.py
--------------------
Shared plumbing for session-bound repositories.

A repository wraps one AsyncSession and never commits; the caller decides
where the transaction boundary is. Transport / driver failures are turned
into StorageUnavailable so nothing above this layer sees SQLAlchemy errors.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicerelay.core.exceptions import StorageUnavailable
from voicerelay.core.logging import get_logger

logger = get_logger(__name__)


class SessionRepository:

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "Repository operation failed",
                repository=type(self).__name__,
                operation=operation,
                error=str(exc),
            )
            raise StorageUnavailable() from exc
