"""
Pydantic domain models for Goalpost.

Enumerations shared by the ORM layer and the API, plus the normalized
query objects that both the store queries and the cache keys are built from.
A query object is the single source of a list endpoint's effective
parameters, so two requests that normalize to the same object always
hit the same cache entry.
"""

from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

MAX_PAGE_SIZE = 100
MAX_DUE_SOON_LIMIT = 50
TITLE_FILTER_MAX_LENGTH = 50


class GoalStatus(StrEnum):
    """Lifecycle status of a goal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubtaskStatus(StrEnum):
    """Lifecycle status of a subtask."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class RewardType(StrEnum):
    """Kinds of reward a user can attach to goals."""
    POINTS = "points"
    VOUCHER = "voucher"
    BADGE = "badge"
    DISCOUNT = "discount"
    EXPERIENCE = "experience"
    PHYSICAL_ITEM = "physical_item"


# Reward types that only make sense with a numeric value
VALUED_REWARD_TYPES = frozenset(
    {RewardType.POINTS, RewardType.DISCOUNT, RewardType.EXPERIENCE}
)


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class GoalSortField(StrEnum):
    """Sortable goal columns, named the way the API exposes them."""
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    DUE_DATE = "dueDate"
    TITLE = "title"
    PROGRESS = "progress"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


class ClaimFilter(StrEnum):
    """Reward list filter on claim state."""
    ALL = "all"
    CLAIMED = "claimed"
    UNCLAIMED = "unclaimed"


# ─── Normalized List Queries ──────────────────────────────────


class PageQuery(BaseModel):
    """Pagination shared by every list endpoint."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def cache_params(self) -> dict[str, Any]:
        """Effective parameters, keyed by the names used in cache keys."""
        return {"page": self.page, "limit": self.limit}


class GoalListQuery(PageQuery):
    """Filters, sort and pagination for the goals list."""

    status: GoalStatus | None = None
    title: str = ""
    from_due_date: date | None = None
    to_due_date: date | None = None
    sort_by: GoalSortField = GoalSortField.CREATED_AT
    order: SortOrder = SortOrder.DESC

    @field_validator("title", mode="before")
    @classmethod
    def _normalize_title(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()[:TITLE_FILTER_MAX_LENGTH].rstrip()

    def cache_params(self) -> dict[str, Any]:
        return {
            **super().cache_params(),
            "status": self.status,
            "title": self.title,
            "from": self.from_due_date,
            "to": self.to_due_date,
            "sort": self.sort_by,
            "order": self.order,
        }


class RewardListQuery(PageQuery):
    """Filters and pagination for the rewards list."""

    type: RewardType | None = None
    status: ClaimFilter = ClaimFilter.ALL

    def cache_params(self) -> dict[str, Any]:
        return {**super().cache_params(), "type": self.type, "status": self.status}


class DueSoonQuery(PageQuery):
    """Pagination of the due-soon subtasks embedded in analytics."""

    limit: int = Field(default=10, ge=1)

    @field_validator("limit", mode="after")
    @classmethod
    def _cap_limit(cls, value: int) -> int:
        return min(value, MAX_DUE_SOON_LIMIT)
