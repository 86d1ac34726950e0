"""
Subtask management service.

Subtasks belong to a goal; ownership is checked through the goal. Every
subtask write recomputes the parent goal's progress in the same
transaction, then invalidates the goal's key and the owner's registry
before returning, so the next goal read shows the new progress.
"""

import logging
import uuid
from datetime import datetime

from app.config import Settings, get_settings
from app.core.exceptions import DomainValidationError, NotFoundError
from app.core.models import PageQuery, SubtaskStatus
from app.db.mappers import page_to_dict, subtask_to_dict
from app.db.models import Subtask
from app.db.repositories.subtask_repo import SubtaskRepository
from app.services.cache_layer import CacheInvalidator, ReadThroughCache
from app.services.cache_service import CacheService
from app.services.goal_service import GoalService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "description", "status", "progress", "due_date"})


def effective_progress(status: str, progress: float) -> float:
    """Completed subtasks are always at 100."""
    if status == SubtaskStatus.COMPLETED:
        return 100.0
    return progress


class SubtaskService:
    """
    Subtask CRUD with read-through list caching and cascading recompute.

    Usage:
        service = SubtaskService(subtask_repo, goal_service, cache)
        await service.update_subtask(user_id, goal_id, subtask_id, status="completed")
    """

    def __init__(
        self,
        subtask_repo: SubtaskRepository,
        goal_service: GoalService,
        cache: CacheService,
        settings: Settings | None = None,
    ):
        self._subtasks = subtask_repo
        self._goals = goal_service
        self._keys = cache.keys
        self._reader = ReadThroughCache(cache)
        self._invalidator = CacheInvalidator(cache)
        self._settings = settings or get_settings()

    # ─── Reads ───────────────────────────────────────────────

    async def list_subtasks(
        self,
        user_id: uuid.UUID,
        goal_id: uuid.UUID,
        page: PageQuery,
    ) -> dict:
        """One page of a goal's subtasks, newest first."""
        # Ownership check through the cached goal
        await self._goals.get_goal(user_id, goal_id)

        async def load() -> dict:
            subtasks, total = await self._subtasks.find_by_goal(goal_id, page.limit, page.offset)
            return page_to_dict(
                [subtask_to_dict(s) for s in subtasks], total, page.page, page.limit
            )

        uid = str(user_id)
        return await self._reader.fetch(
            self._keys.subtasks(str(goal_id), page.cache_params()),
            load,
            ttl=self._settings.cache_ttl_subtask_list,
            track_user_id=uid,
        )

    async def get_subtask(
        self,
        user_id: uuid.UUID,
        goal_id: uuid.UUID,
        subtask_id: uuid.UUID,
    ) -> dict:
        await self._goals.get_owned_goal(user_id, goal_id)
        return subtask_to_dict(await self._get_in_goal(goal_id, subtask_id))

    # ─── Writes ──────────────────────────────────────────────

    async def create_subtask(
        self,
        user_id: uuid.UUID,
        goal_id: uuid.UUID,
        title: str,
        description: str = "",
        status: SubtaskStatus = SubtaskStatus.PENDING,
        progress: float = 0.0,
        due_date: datetime | None = None,
    ) -> dict:
        goal = await self._goals.get_owned_goal(user_id, goal_id)
        status = SubtaskStatus(status)
        subtask = await self._subtasks.create(
            goal_id=goal.id,
            title=title,
            description=description or "",
            status=status.value,
            progress=effective_progress(status, _checked_progress(progress)),
            due_date=due_date,
        )
        await self._goals.recompute_progress(goal)
        await self._subtasks.session.commit()
        logger.info(f"Subtask created: {subtask.id} (goal: {goal_id})")

        await self._invalidator.invalidate(str(user_id), self._keys.goal(str(goal_id)))
        return subtask_to_dict(subtask)

    async def update_subtask(
        self,
        user_id: uuid.UUID,
        goal_id: uuid.UUID,
        subtask_id: uuid.UUID,
        **changes,
    ) -> dict:
        """
        Update a subtask and recompute its goal's progress.

        Raises:
            DomainValidationError: Unknown field or progress outside 0-100.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise DomainValidationError(
                f"Cannot update subtask fields: {', '.join(sorted(unknown))}"
            )

        goal = await self._goals.get_owned_goal(user_id, goal_id)
        subtask = await self._get_in_goal(goal_id, subtask_id)

        if "status" in changes:
            changes["status"] = SubtaskStatus(changes["status"]).value
        if "progress" in changes:
            changes["progress"] = _checked_progress(changes["progress"])
        status = changes.get("status", subtask.status)
        changes["progress"] = effective_progress(
            status, changes.get("progress", subtask.progress)
        )

        subtask = await self._subtasks.update(subtask, **changes)
        await self._goals.recompute_progress(goal)
        await self._subtasks.session.commit()

        await self._invalidator.invalidate(str(user_id), self._keys.goal(str(goal_id)))
        return subtask_to_dict(subtask)

    async def delete_subtask(
        self,
        user_id: uuid.UUID,
        goal_id: uuid.UUID,
        subtask_id: uuid.UUID,
    ) -> None:
        goal = await self._goals.get_owned_goal(user_id, goal_id)
        subtask = await self._get_in_goal(goal_id, subtask_id)
        await self._subtasks.delete(subtask)
        await self._goals.recompute_progress(goal)
        await self._subtasks.session.commit()
        logger.info(f"Subtask deleted: {subtask_id} (goal: {goal_id})")

        await self._invalidator.invalidate(str(user_id), self._keys.goal(str(goal_id)))

    # ─── Helpers ─────────────────────────────────────────────

    async def _get_in_goal(self, goal_id: uuid.UUID, subtask_id: uuid.UUID) -> Subtask:
        subtask = await self._subtasks.get_by_id(subtask_id)
        if subtask is None or subtask.goal_id != goal_id:
            raise NotFoundError("Subtask", str(subtask_id))
        return subtask


def _checked_progress(progress: float) -> float:
    if progress is None or not 0 <= progress <= 100:
        raise DomainValidationError("Subtask progress must be between 0 and 100")
    return float(progress)
