"""
Goal management service.

Handles:
- Cached goal reads (paginated list per user and query, single goal)
- Goal create/update/delete with write-path cache invalidation
- Progress recomputation from subtasks, shared with the subtask service

Every mutation commits before it invalidates, so a reader that misses
right after the write loads the new row.
"""

import logging
import uuid
from datetime import datetime

from app.config import Settings, get_settings
from app.core.exceptions import DomainValidationError, ForbiddenError, NotFoundError
from app.core.models import GoalListQuery, GoalStatus
from app.db.mappers import goal_to_dict, page_to_dict
from app.db.models import Goal
from app.db.repositories.goal_repo import GoalRepository
from app.db.repositories.reward_repo import RewardRepository
from app.db.repositories.subtask_repo import SubtaskRepository
from app.services.cache_layer import CacheInvalidator, ReadThroughCache
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)

# Fields a client may change on a goal; progress is derived
UPDATABLE_FIELDS = frozenset({"title", "description", "due_date", "status", "reward_id"})


def derive_goal_progress(subtask_progress: list[float], status: str) -> float:
    """
    Goal progress from its subtasks' progress values.

    Mean of the values rounded to two decimals. A goal without subtasks
    is 100 when completed and 0 otherwise.
    """
    if not subtask_progress:
        return 100.0 if status == GoalStatus.COMPLETED else 0.0
    return round(sum(subtask_progress) / len(subtask_progress), 2)


class GoalService:
    """
    Goal CRUD with read-through caching.

    Usage:
        service = GoalService(goal_repo, subtask_repo, reward_repo, cache)
        page = await service.list_goals(user_id, GoalListQuery(status="active"))
        goal = await service.update_goal(user_id, goal_id, status="completed")
    """

    def __init__(
        self,
        goal_repo: GoalRepository,
        subtask_repo: SubtaskRepository,
        reward_repo: RewardRepository,
        cache: CacheService,
        settings: Settings | None = None,
    ):
        self._goals = goal_repo
        self._subtasks = subtask_repo
        self._rewards = reward_repo
        self._cache = cache
        self._keys = cache.keys
        self._reader = ReadThroughCache(cache)
        self._invalidator = CacheInvalidator(cache)
        self._settings = settings or get_settings()

    # ─── Reads ───────────────────────────────────────────────

    async def list_goals(self, user_id: uuid.UUID, query: GoalListQuery) -> dict:
        """One page of the user's goals matching ``query``."""
        uid = str(user_id)

        async def load() -> dict:
            goals, total = await self._goals.find_by_user(user_id, query)
            return page_to_dict([goal_to_dict(g) for g in goals], total, query.page, query.limit)

        return await self._reader.fetch(
            self._keys.goals(uid, query.cache_params()),
            load,
            ttl=self._settings.cache_ttl_goal_list,
            track_user_id=uid,
        )

    async def get_goal(self, user_id: uuid.UUID, goal_id: uuid.UUID) -> dict:
        """
        A single goal, served from cache when possible.

        Raises:
            NotFoundError: No such goal.
            ForbiddenError: The goal belongs to another user.
        """

        async def load() -> dict:
            goal = await self._goals.get_by_id(goal_id)
            if goal is None:
                raise NotFoundError("Goal", str(goal_id))
            return goal_to_dict(goal)

        goal = await self._reader.fetch(
            self._keys.goal(str(goal_id)), load, ttl=self._settings.cache_ttl_goal
        )
        if goal["user_id"] != str(user_id):
            raise ForbiddenError("Not authorized to access this goal")
        return goal

    # ─── Writes ──────────────────────────────────────────────

    async def create_goal(
        self,
        user_id: uuid.UUID,
        title: str,
        description: str = "",
        due_date: datetime | None = None,
        status: GoalStatus = GoalStatus.ACTIVE,
        reward_id: uuid.UUID | None = None,
    ) -> dict:
        """Create a goal, optionally attached to one of the user's rewards."""
        if reward_id is not None:
            await self._require_owned_reward(user_id, reward_id)

        goal = await self._goals.create(
            user_id=user_id,
            title=title,
            description=description or "",
            due_date=due_date,
            status=GoalStatus(status).value,
            reward_id=reward_id,
            progress=derive_goal_progress([], status),
        )
        await self._goals.session.commit()
        logger.info(f"Goal created: {goal.id} (user: {user_id})")

        await self._invalidator.invalidate(str(user_id))
        return goal_to_dict(goal)

    async def update_goal(self, user_id: uuid.UUID, goal_id: uuid.UUID, **changes) -> dict:
        """
        Update a goal's fields.

        Changing the status recomputes progress, since a goal without
        subtasks is complete exactly when its status says so.

        Raises:
            DomainValidationError: An unknown or read-only field was given.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise DomainValidationError(f"Cannot update goal fields: {', '.join(sorted(unknown))}")

        goal = await self.get_owned_goal(user_id, goal_id)
        if changes.get("reward_id") is not None:
            await self._require_owned_reward(user_id, changes["reward_id"])
        if "status" in changes:
            changes["status"] = GoalStatus(changes["status"]).value

        status_changed = "status" in changes and changes["status"] != goal.status
        goal = await self._goals.update(goal, **changes)
        if status_changed:
            await self.recompute_progress(goal)
        await self._goals.session.commit()

        await self._invalidator.invalidate(str(user_id), self._keys.goal(str(goal_id)))
        return goal_to_dict(goal)

    async def delete_goal(self, user_id: uuid.UUID, goal_id: uuid.UUID) -> None:
        """Delete a goal and, via cascade, its subtasks."""
        goal = await self.get_owned_goal(user_id, goal_id)
        await self._goals.delete(goal)
        await self._goals.session.commit()
        logger.info(f"Goal deleted: {goal_id} (user: {user_id})")

        await self._invalidator.invalidate(str(user_id), self._keys.goal(str(goal_id)))

    # ─── Helpers shared with other services ──────────────────

    async def get_owned_goal(self, user_id: uuid.UUID, goal_id: uuid.UUID) -> Goal:
        """Load a goal from the store and check ownership."""
        goal = await self._goals.get_by_id(goal_id)
        if goal is None:
            raise NotFoundError("Goal", str(goal_id))
        if goal.user_id != user_id:
            raise ForbiddenError("Not authorized to access this goal")
        return goal

    async def recompute_progress(self, goal: Goal) -> Goal:
        """Recalculate and persist (flush) the goal's progress."""
        values = await self._subtasks.progress_values(goal.id)
        progress = derive_goal_progress(values, goal.status)
        if progress != goal.progress:
            goal = await self._goals.update(goal, progress=progress)
        return goal

    async def _require_owned_reward(self, user_id: uuid.UUID, reward_id: uuid.UUID) -> None:
        reward = await self._rewards.get_by_id(reward_id)
        if reward is None:
            raise NotFoundError("Reward", str(reward_id))
        if reward.user_id != user_id:
            raise ForbiddenError("Not authorized to use this reward")
