"""
Reward-specific database repository.
"""

import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import ClaimFilter, RewardListQuery
from app.db.models import Reward
from app.db.repositories.base_repo import BaseRepository


class RewardRepository(BaseRepository[Reward]):
    """Repository for Reward CRUD and listing."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Reward)

    async def find_by_user(
        self,
        user_id: uuid.UUID,
        query: RewardListQuery,
    ) -> tuple[list[Reward], int]:
        """
        Get one page of the rewards a user can see, newest first: their own
        plus every public reward.

        Args:
            user_id: Viewing user ID.
            query: Type and claim-state filters plus pagination.
        """
        stmt = select(Reward).where(or_(Reward.public.is_(True), Reward.user_id == user_id))
        if query.type is not None:
            stmt = stmt.where(Reward.type == query.type.value)
        if query.status == ClaimFilter.CLAIMED:
            stmt = stmt.where(Reward.is_claimed.is_(True))
        elif query.status == ClaimFilter.UNCLAIMED:
            stmt = stmt.where(Reward.is_claimed.is_(False))
        stmt = stmt.order_by(Reward.created_at.desc(), Reward.id)
        return await self._paginate(stmt, query.limit, query.offset)
