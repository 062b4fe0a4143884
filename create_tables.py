"""
create_tables.py
----------------
One-shot script to create all database tables and seed the moderator
accounts listed in BOOTSTRAP_MODERATORS.
Use this for quick setup; it is safe to run repeatedly.

Usage:
    python create_tables.py
"""

import asyncio

from voicerelay.core.config import settings
from voicerelay.db.session import build_engine, build_session_factory
from voicerelay.models import Base  # Imports all models so metadata is populated
from voicerelay.services.user_service import UserService


async def create_all_tables() -> None:
    engine = build_engine(settings.DATABASE_URL, echo=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    created = 0
    if settings.BOOTSTRAP_MODERATORS:
        async with build_session_factory(engine)() as session:
            created = await UserService.bootstrap_moderators(
                session, settings.BOOTSTRAP_MODERATORS
            )
    await engine.dispose()
    print(f"✅  All tables created successfully ({created} moderator(s) seeded).")


if __name__ == "__main__":
    asyncio.run(create_all_tables())
