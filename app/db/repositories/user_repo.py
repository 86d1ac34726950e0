"""
User-specific database repository.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import User
from app.db.repositories.base_repo import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User CRUD and authentication queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address (case-insensitive)."""
        stmt = select(User).where(User.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        """Check if an email is already registered."""
        return await self.find_by_email(email) is not None

    async def username_exists(self, username: str) -> bool:
        return await self.find_by_username(username) is not None
