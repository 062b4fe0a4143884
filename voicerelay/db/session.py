"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - The engine is built once by the application lifespan and kept on
    app.state; nothing in the request path reaches for a module global.
  - asyncpg pool sized for a small API: pool_size=10, max_overflow=20.
    SQLite (tests, local dev) keeps SQLAlchemy's default pool.
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
"""

from typing import Any, AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def build_engine(
    database_url: str,
    echo: bool = False,
    command_timeout: float | None = None,
) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600)
        if command_timeout is not None:
            # asyncpg bounds every statement with this
            kwargs["connect_args"] = {"command_timeout": command_timeout}
    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency that yields a database session.
    The session is committed when the request finishes,
    and rolled back on exceptions.

    Usage:
        @router.get("/example")
        async def handler(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
