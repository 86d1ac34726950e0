"""
Goal-specific database repository.

Handles user-scoped goal listing with filters, sorting and pagination,
plus the aggregate queries the analytics service needs.
"""

import uuid
from datetime import UTC, datetime, time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import GoalListQuery, GoalSortField, GoalStatus, SortOrder
from app.db.models import Goal
from app.db.repositories.base_repo import BaseRepository

_SORT_COLUMNS = {
    GoalSortField.CREATED_AT: Goal.created_at,
    GoalSortField.UPDATED_AT: Goal.updated_at,
    GoalSortField.DUE_DATE: Goal.due_date,
    GoalSortField.TITLE: Goal.title,
    GoalSortField.PROGRESS: Goal.progress,
}


class GoalRepository(BaseRepository[Goal]):
    """Repository for Goal CRUD, listing and aggregates."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Goal)

    async def find_by_user(
        self,
        user_id: uuid.UUID,
        query: GoalListQuery,
    ) -> tuple[list[Goal], int]:
        """
        Get one page of a user's goals.

        Args:
            user_id: Owner user ID.
            query: Normalized filters, sort and pagination.

        Returns:
            (goals on this page, total matching goals)
        """
        stmt = select(Goal).where(Goal.user_id == user_id)
        if query.status is not None:
            stmt = stmt.where(Goal.status == query.status.value)
        if query.title:
            stmt = stmt.where(Goal.title.ilike(f"%{query.title}%"))
        if query.from_due_date is not None:
            stmt = stmt.where(Goal.due_date >= datetime.combine(query.from_due_date, time.min, tzinfo=UTC))
        if query.to_due_date is not None:
            stmt = stmt.where(Goal.due_date <= datetime.combine(query.to_due_date, time.max, tzinfo=UTC))

        column = _SORT_COLUMNS[query.sort_by]
        ordering = column.asc() if query.order == SortOrder.ASC else column.desc()
        # Tie-break on id so pages are stable
        stmt = stmt.order_by(ordering, Goal.id)
        return await self._paginate(stmt, query.limit, query.offset)

    async def find_by_reward(self, reward_id: uuid.UUID) -> list[Goal]:
        """Get every goal the reward is attached to."""
        stmt = select(Goal).where(Goal.reward_id == reward_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self, user_id: uuid.UUID) -> dict[str, int]:
        """Count a user's goals grouped by status (every status present)."""
        stmt = (
            select(Goal.status, func.count())
            .where(Goal.user_id == user_id)
            .group_by(Goal.status)
        )
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in GoalStatus}
        counts.update({status: count for status, count in result.all()})
        return counts

    async def average_progress(self, user_id: uuid.UUID) -> float:
        """Mean progress across all of a user's goals (0 when none)."""
        stmt = select(func.avg(Goal.progress)).where(Goal.user_id == user_id)
        result = await self.session.execute(stmt)
        return float(result.scalar_one() or 0.0)

    async def count_overdue(self, user_id: uuid.UUID, now: datetime) -> int:
        """Count active goals whose due date has passed."""
        stmt = select(func.count()).select_from(Goal).where(
            Goal.user_id == user_id,
            Goal.status == GoalStatus.ACTIVE.value,
            Goal.due_date.is_not(None),
            Goal.due_date < now,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
