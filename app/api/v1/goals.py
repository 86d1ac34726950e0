"""
Goal API endpoints.

Provides:
- GET    /api/v1/goals: List goals (filters, sort, pagination; cached)
- POST   /api/v1/goals: Create a goal
- GET    /api/v1/goals/{goal_id}: Get a goal (cached)
- PUT    /api/v1/goals/{goal_id}: Update a goal
- DELETE /api/v1/goals/{goal_id}: Delete a goal and its subtasks
"""

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.dependencies import get_goal_service
from app.core.exceptions import DomainValidationError
from app.core.models import (
    MAX_PAGE_SIZE,
    GoalListQuery,
    GoalSortField,
    GoalStatus,
    SortOrder,
)
from app.middleware.auth_middleware import get_current_user_id
from app.services.goal_service import GoalService

router = APIRouter(prefix="/goals", tags=["Goals"])


# ─── Request / Response Schemas ──────────────────────────────


class GoalResponse(BaseModel):
    id: str
    user_id: str
    reward_id: str | None = None
    title: str
    description: str
    due_date: str | None = None
    status: GoalStatus
    progress: float
    created_at: str | None = None
    updated_at: str | None = None


class GoalPageResponse(BaseModel):
    items: list[GoalResponse]
    total: int
    page: int
    limit: int
    pages: int


class CreateGoalRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    due_date: datetime | None = None
    status: GoalStatus = GoalStatus.ACTIVE
    reward_id: uuid.UUID | None = None


class UpdateGoalRequest(BaseModel):
    """Partial goal update. Progress is derived and cannot be set."""
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    due_date: datetime | None = None
    status: GoalStatus | None = None
    reward_id: uuid.UUID | None = None


# Fields that may be explicitly cleared with null
CLEARABLE_FIELDS = frozenset({"due_date", "reward_id"})


def _parse_status_filter(value: str | None) -> GoalStatus | None:
    if value is None or value == "" or value == "all":
        return None
    try:
        return GoalStatus(value)
    except ValueError as e:
        raise DomainValidationError(f"Invalid status filter: {value!r}") from e


# ─── Endpoints ───────────────────────────────────────────────


@router.get("", response_model=GoalPageResponse, summary="List goals")
async def list_goals(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    status_filter: str | None = Query(None, alias="status"),
    title: str | None = Query(None),
    from_date: date | None = Query(None, alias="from"),
    to_date: date | None = Query(None, alias="to"),
    sort: GoalSortField = Query(GoalSortField.CREATED_AT),
    order: SortOrder = Query(SortOrder.DESC),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
):
    """
    List the caller's goals.

    ``status`` accepts ``active``, ``completed``, ``cancelled`` or ``all``;
    ``title`` is a case-insensitive substring (first 50 characters used);
    ``from``/``to`` bound the due date.
    """
    query = GoalListQuery(
        page=page,
        limit=limit,
        status=_parse_status_filter(status_filter),
        title=title,
        from_due_date=from_date,
        to_due_date=to_date,
        sort_by=sort,
        order=order,
    )
    return await service.list_goals(user_id, query)


@router.post(
    "",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a goal",
)
async def create_goal(
    body: CreateGoalRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
):
    return await service.create_goal(user_id, **body.model_dump())


@router.get("/{goal_id}", response_model=GoalResponse, summary="Get a goal")
async def get_goal(
    goal_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
):
    return await service.get_goal(user_id, goal_id)


@router.put("/{goal_id}", response_model=GoalResponse, summary="Update a goal")
async def update_goal(
    goal_id: uuid.UUID,
    body: UpdateGoalRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
):
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key in CLEARABLE_FIELDS
    }
    return await service.update_goal(user_id, goal_id, **changes)


@router.delete(
    "/{goal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a goal",
)
async def delete_goal(
    goal_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: GoalService = Depends(get_goal_service),
):
    await service.delete_goal(user_id, goal_id)
