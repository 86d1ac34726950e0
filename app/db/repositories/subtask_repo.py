"""
Subtask-specific database repository.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import SubtaskStatus
from app.db.models import Goal, Subtask
from app.db.repositories.base_repo import BaseRepository


class SubtaskRepository(BaseRepository[Subtask]):
    """Repository for Subtask CRUD and due-date queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Subtask)

    async def find_by_goal(
        self,
        goal_id: uuid.UUID,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Subtask], int]:
        """Get one page of a goal's subtasks, newest first."""
        stmt = (
            select(Subtask)
            .where(Subtask.goal_id == goal_id)
            .order_by(Subtask.created_at.desc(), Subtask.id)
        )
        return await self._paginate(stmt, limit, offset)

    async def progress_values(self, goal_id: uuid.UUID) -> list[float]:
        """Progress of every subtask of a goal."""
        stmt = select(Subtask.progress).where(Subtask.goal_id == goal_id)
        result = await self.session.execute(stmt)
        return [float(value) for value in result.scalars().all()]

    async def find_due_soon(
        self,
        user_id: uuid.UUID,
        now: datetime,
        until: datetime,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Subtask], int]:
        """
        Get a user's unfinished subtasks due in the window [now, until].

        Returns:
            (subtasks on this page, soonest first; total in the window)
        """
        stmt = (
            select(Subtask)
            .join(Goal, Subtask.goal_id == Goal.id)
            .where(
                Goal.user_id == user_id,
                Subtask.status != SubtaskStatus.COMPLETED.value,
                Subtask.due_date.is_not(None),
                Subtask.due_date >= now,
                Subtask.due_date <= until,
            )
            .order_by(Subtask.due_date.asc(), Subtask.id)
        )
        return await self._paginate(stmt, limit, offset)
