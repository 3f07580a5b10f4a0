"""User service — registration, credential checks, user lookup.

Learn: Both the REST auth dependency and the realtime credential verifier
resolve tokens through get_active_user(), so "deactivated" means the same
thing on both channels.
"""

from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from murmur.auth.password import hash_password, verify_password
from murmur.db.models import User


class UsernameTakenError(Exception):
    pass


class EmailTakenError(Exception):
    pass


class InvalidCredentialsError(Exception):
    """Unknown identifier, wrong password, or inactive account.

    One error for all three so the login response never reveals which.
    """


class UserService:
    """Business logic for user accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(
        self, username: str, display_name: str, email: str, password: str
    ) -> User:
        if await self._find_one(User.username == username):
            raise UsernameTakenError(username)
        if await self._find_one(User.email == email):
            raise EmailTakenError(email)

        user = User(
            username=username,
            display_name=display_name,
            email=email,
            password_hash=hash_password(password),
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def authenticate(self, identifier: str, password: str) -> User:
        """Log in by username or email."""
        user = await self._find_one(
            or_(User.username == identifier, User.email == identifier)
        )
        if user is None or not user.is_active:
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        return user

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_active_user(self, user_id: int) -> Optional[User]:
        user = await self.get_user(user_id)
        if user is None or not user.is_active:
            return None
        return user

    async def _find_one(self, clause) -> Optional[User]:
        result = await self.db.execute(select(User).where(clause))
        return result.scalars().first()
