"""
repositories/user.py
--------------------
Credential store: persistence for User records.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from voicerelay.core.exceptions import DuplicateHandle
from voicerelay.models.user import User, UserRole
from voicerelay.repositories.base import SessionRepository


class UserRepository(SessionRepository):

    async def get_by_id(self, user_id: str) -> User | None:
        async with self._guard("get_by_id"):
            result = await self.session.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> User | None:
        """Exact, case-sensitive handle lookup."""
        async with self._guard("get_by_username"):
            result = await self.session.execute(
                select(User).where(User.username == username)
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        username: str,
        hashed_password: str,
        role: UserRole = UserRole.user,
        display_name: str | None = None,
    ) -> User:
        """
        Insert a new user.
        Raises DuplicateHandle if the username is already taken.
        """
        user = User(
            username=username,
            hashed_password=hashed_password,
            role=role.value,
            display_name=display_name,
        )
        self.session.add(user)
        async with self._guard("create"):
            try:
                await self.session.flush()
            except IntegrityError:
                await self.session.rollback()
                raise DuplicateHandle(f"Handle '{username}' is already registered")
            await self.session.refresh(user)
        return user
