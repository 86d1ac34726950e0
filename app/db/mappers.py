"""
ORM → JSON mapping helpers for Goalpost.

Every value that may be cached passes through one of these mappers, so the
cached copy and the freshly loaded copy of an entity are byte-for-byte the
same shape: ids as strings, datetimes as ISO-8601 text, enums as values.

Usage:
    from app.db.mappers import goal_to_dict

    payload = goal_to_dict(goal)
"""

from datetime import datetime

from app.db.models import Goal, Reward, Subtask, User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def user_to_dict(user: User) -> dict:
    """Serialize a User to a safe dict (no password hash)."""
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def reward_to_dict(reward: Reward) -> dict:
    return {
        "id": str(reward.id),
        "user_id": str(reward.user_id),
        "type": reward.type,
        "value": reward.value,
        "description": reward.description,
        "category": reward.category,
        "expiry_date": _iso(reward.expiry_date),
        "public": reward.public,
        "is_claimed": reward.is_claimed,
        "claimed_at": _iso(reward.claimed_at),
        "created_at": _iso(reward.created_at),
        "updated_at": _iso(reward.updated_at),
    }


def goal_to_dict(goal: Goal) -> dict:
    """Serialize a Goal. The reward is referenced by id only."""
    return {
        "id": str(goal.id),
        "user_id": str(goal.user_id),
        "reward_id": str(goal.reward_id) if goal.reward_id else None,
        "title": goal.title,
        "description": goal.description,
        "due_date": _iso(goal.due_date),
        "status": goal.status,
        "progress": goal.progress,
        "created_at": _iso(goal.created_at),
        "updated_at": _iso(goal.updated_at),
    }


def subtask_to_dict(subtask: Subtask) -> dict:
    return {
        "id": str(subtask.id),
        "goal_id": str(subtask.goal_id),
        "title": subtask.title,
        "description": subtask.description,
        "status": subtask.status,
        "progress": subtask.progress,
        "due_date": _iso(subtask.due_date),
        "created_at": _iso(subtask.created_at),
        "updated_at": _iso(subtask.updated_at),
    }


def page_to_dict(items: list[dict], total: int, page: int, limit: int) -> dict:
    """Envelope for a paginated list response."""
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
    }
