"""
FastAPI dependencies that assemble services for a request.

All repositories of one request share the request's database session
(FastAPI resolves ``get_db`` once per request), and every service shares
the process-wide cache client created in ``create_app()``.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.database import get_db
from app.db.repositories import (
    GoalRepository,
    RewardRepository,
    SubtaskRepository,
    UserRepository,
)
from app.services.analytics_service import AnalyticsService
from app.services.cache_service import CacheService
from app.services.goal_service import GoalService
from app.services.reward_service import RewardService
from app.services.subtask_service import SubtaskService
from app.services.user_service import UserService


def get_cache(request: Request) -> CacheService:
    """The cache client stored on ``app.state`` by the application factory."""
    return request.app.state.cache


def get_user_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> UserService:
    return UserService(UserRepository(db), cache)


def get_goal_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> GoalService:
    return GoalService(GoalRepository(db), SubtaskRepository(db), RewardRepository(db), cache)


def get_subtask_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    goal_service: GoalService = Depends(get_goal_service),
) -> SubtaskService:
    return SubtaskService(SubtaskRepository(db), goal_service, cache)


def get_reward_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    goal_service: GoalService = Depends(get_goal_service),
) -> RewardService:
    return RewardService(RewardRepository(db), GoalRepository(db), goal_service, cache)


def get_analytics_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
) -> AnalyticsService:
    return AnalyticsService(GoalRepository(db), SubtaskRepository(db), cache)
