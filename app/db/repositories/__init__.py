"""
Database repository layer for Goalpost.

All repositories inherit from BaseRepository and provide CRUD operations
plus entity-specific query methods. Ownership checks live in the services.

Usage:
    from app.db.repositories import GoalRepository, SubtaskRepository

    goal_repo = GoalRepository(session)
    goals, total = await goal_repo.find_by_user(user_id, GoalListQuery())
"""

from app.db.repositories.base_repo import BaseRepository
from app.db.repositories.goal_repo import GoalRepository
from app.db.repositories.reward_repo import RewardRepository
from app.db.repositories.subtask_repo import SubtaskRepository
from app.db.repositories.user_repo import UserRepository

__all__ = [
    "BaseRepository",
    "GoalRepository",
    "RewardRepository",
    "SubtaskRepository",
    "UserRepository",
]
