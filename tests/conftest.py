"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator

# Settings are read at import time, so the environment must be ready first.
_TMP = tempfile.mkdtemp(prefix="voicerelay_test_")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/default.db")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["PUBLIC_BASE_URL"] = "http://test"
os.environ["LOCAL_STORAGE_DIR"] = os.path.join(_TMP, "uploads")
os.environ["STORAGE_BACKEND"] = "local"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from main import create_application  # noqa: E402
from voicerelay.core.config import settings  # noqa: E402
from voicerelay.core.security import create_access_token, hash_password  # noqa: E402
from voicerelay.db.session import build_engine, build_session_factory  # noqa: E402
from voicerelay.models import Base, User, UserRole  # noqa: E402
from voicerelay.repositories.user import UserRepository  # noqa: E402
from voicerelay.storage.local import LocalBlobStore  # noqa: E402

PASSWORD = "password123"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", "http://test", settings.SECRET_KEY)


@pytest_asyncio.fixture
async def client(engine, session_factory, blob_store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app, wired to the per-test DB and blob store."""
    app = create_application()
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.blob_store = blob_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_user(
    session: AsyncSession, handle: str, role: UserRole = UserRole.user
) -> User:
    user = await UserRepository(session).create(
        username=handle,
        hashed_password=hash_password(PASSWORD),
        role=role,
        display_name=handle.title(),
    )
    await session.commit()
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.username, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def alice(db_session) -> User:
    return await make_user(db_session, "alice")


@pytest_asyncio.fixture
async def bob(db_session) -> User:
    return await make_user(db_session, "bob")


@pytest_asyncio.fixture
async def moderator(db_session) -> User:
    return await make_user(db_session, "mod", role=UserRole.moderator)


@pytest.fixture
def alice_headers(alice) -> dict:
    return auth_headers(alice)


@pytest.fixture
def bob_headers(bob) -> dict:
    return auth_headers(bob)


@pytest.fixture
def moderator_headers(moderator) -> dict:
    return auth_headers(moderator)
