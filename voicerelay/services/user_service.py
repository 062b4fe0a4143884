"""
services/user_service.py
------------------------
Business logic for registration, authentication and moderator seeding.

Login failures are deliberately uniform: an unknown handle and a wrong
password raise the same InvalidCredentials, and an unknown handle still
pays for one bcrypt verification so timing does not reveal which it was.
"""

from datetime import timedelta
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from voicerelay.core.config import BootstrapModerator, settings
from voicerelay.core.exceptions import DuplicateHandle, InvalidCredentials
from voicerelay.core.logging import get_logger
from voicerelay.core.security import create_access_token, hash_password, verify_password
from voicerelay.models.user import User, UserRole
from voicerelay.repositories.user import UserRepository
from voicerelay.schemas.user import TokenResponse, UserRegister

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("not-a-real-password")


class UserService:

    @staticmethod
    async def register_user(db: AsyncSession, data: UserRegister) -> User:
        """
        Self-registration: creates a 'user'-role account.
        Raises DuplicateHandle if the handle is taken.
        """
        user = await UserRepository(db).create(
            username=data.handle,
            hashed_password=hash_password(data.password),
            role=UserRole.user,
            display_name=data.name,
        )
        logger.info("User registered", user_id=user.id)
        return user

    @staticmethod
    async def authenticate(db: AsyncSession, handle: str, password: str) -> User:
        """
        Verify credentials and return the User.
        Handle lookup is exact and case-sensitive.
        """
        user = await UserRepository(db).get_by_username(handle)
        if user is None:
            verify_password(password, _dummy_hash())
            logger.info("Login rejected")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login rejected", user_id=user.id)
            raise InvalidCredentials()
        return user

    @staticmethod
    def issue_token(user: User) -> TokenResponse:
        expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        token = create_access_token(
            subject=user.id,
            username=user.username,
            role=user.role,
            expires_delta=expires,
        )
        return TokenResponse(
            token=token,
            expires_in=int(expires.total_seconds()),
            role=user.role,
            handle=user.username,
            name=user.display_name,
        )

    @staticmethod
    async def bootstrap_moderators(
        db: AsyncSession, entries: list[BootstrapModerator]
    ) -> int:
        """
        Ensure each configured moderator account exists.
        Existing handles are left untouched. Commits per account, so call
        it with a dedicated session. Returns the number created.
        """
        repo = UserRepository(db)
        created = 0
        for entry in entries:
            if await repo.get_by_username(entry.handle) is not None:
                continue
            try:
                await repo.create(
                    username=entry.handle,
                    hashed_password=hash_password(entry.password),
                    role=UserRole.moderator,
                    display_name=entry.name,
                )
                await db.commit()
            except DuplicateHandle:
                # Another worker seeded it first
                continue
            created += 1
        if created:
            logger.info("Seeded moderator accounts", count=created)
        return created
