"""
Goal analytics service.

Two cached views per user:
- dashboard: active/completed counts, overall progress and the subtasks
  due within the next 7 days (paginated, at most 50 per page)
- user analytics: the dashboard plus overdue count, per-status breakdown
  and completion rate

Both are list-like results derived from many rows, so their keys are
tracked in the user's registry and dropped by any goal, subtask or reward
write of that user.
"""

import uuid
from datetime import UTC, datetime, timedelta

from app.config import Settings, get_settings
from app.core.models import DueSoonQuery, GoalStatus
from app.db.mappers import page_to_dict, subtask_to_dict
from app.db.repositories.goal_repo import GoalRepository
from app.db.repositories.subtask_repo import SubtaskRepository
from app.services.cache_layer import ReadThroughCache
from app.services.cache_service import CacheService

DUE_SOON_WINDOW = timedelta(days=7)


class AnalyticsService:
    """Aggregated goal statistics with read-through caching."""

    def __init__(
        self,
        goal_repo: GoalRepository,
        subtask_repo: SubtaskRepository,
        cache: CacheService,
        settings: Settings | None = None,
        clock=None,
    ):
        self._goals = goal_repo
        self._subtasks = subtask_repo
        self._keys = cache.keys
        self._reader = ReadThroughCache(cache)
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def dashboard(self, user_id: uuid.UUID, query: DueSoonQuery) -> dict:
        uid = str(user_id)
        return await self._reader.fetch(
            self._keys.analytics(uid, "dashboard", query.cache_params()),
            lambda: self._load_dashboard(user_id, query),
            ttl=self._settings.cache_ttl_dashboard,
            track_user_id=uid,
        )

    async def user_analytics(self, user_id: uuid.UUID, query: DueSoonQuery) -> dict:
        uid = str(user_id)

        async def load() -> dict:
            dashboard = await self._load_dashboard(user_id, query)
            counts = await self._goals.count_by_status(user_id)
            total = sum(counts.values())
            completed = counts[GoalStatus.COMPLETED.value]
            return {
                **dashboard,
                "total_goals": total,
                "overdue_count": await self._goals.count_overdue(user_id, self._clock()),
                "status_breakdown": counts,
                "completion_rate": round(completed / total * 100, 2) if total else 0.0,
            }

        return await self._reader.fetch(
            self._keys.analytics(uid, "full", query.cache_params()),
            load,
            ttl=self._settings.cache_ttl_analytics,
            track_user_id=uid,
        )

    async def _load_dashboard(self, user_id: uuid.UUID, query: DueSoonQuery) -> dict:
        now = self._clock()
        counts = await self._goals.count_by_status(user_id)
        due_soon, total_due = await self._subtasks.find_due_soon(
            user_id, now, now + DUE_SOON_WINDOW, query.limit, query.offset
        )
        return {
            "active_goals": counts[GoalStatus.ACTIVE.value],
            "completed_goals": counts[GoalStatus.COMPLETED.value],
            "overall_progress": round(await self._goals.average_progress(user_id), 2),
            "due_soon": page_to_dict(
                [subtask_to_dict(s) for s in due_soon], total_due, query.page, query.limit
            ),
        }
