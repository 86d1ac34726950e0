"""
Subtask API endpoints, nested under their goal.

Provides:
- GET    /api/v1/goals/{goal_id}/subtasks: List subtasks (cached)
- POST   /api/v1/goals/{goal_id}/subtasks: Create a subtask
- GET    /api/v1/goals/{goal_id}/subtasks/{subtask_id}: Get a subtask
- PATCH  /api/v1/goals/{goal_id}/subtasks/{subtask_id}: Update a subtask
- DELETE /api/v1/goals/{goal_id}/subtasks/{subtask_id}: Delete a subtask

Every write recomputes the goal's progress before responding.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.dependencies import get_subtask_service
from app.core.models import MAX_PAGE_SIZE, PageQuery, SubtaskStatus
from app.middleware.auth_middleware import get_current_user_id
from app.services.subtask_service import SubtaskService

router = APIRouter(prefix="/goals/{goal_id}/subtasks", tags=["Subtasks"])


# ─── Request / Response Schemas ──────────────────────────────


class SubtaskResponse(BaseModel):
    id: str
    goal_id: str
    title: str
    description: str
    status: SubtaskStatus
    progress: float
    due_date: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class SubtaskPageResponse(BaseModel):
    items: list[SubtaskResponse]
    total: int
    page: int
    limit: int
    pages: int


class CreateSubtaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    status: SubtaskStatus = SubtaskStatus.PENDING
    progress: float = Field(default=0.0, ge=0, le=100)
    due_date: datetime | None = None


class UpdateSubtaskRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    status: SubtaskStatus | None = None
    progress: float | None = Field(default=None, ge=0, le=100)
    due_date: datetime | None = None


CLEARABLE_FIELDS = frozenset({"due_date"})


# ─── Endpoints ───────────────────────────────────────────────


@router.get("", response_model=SubtaskPageResponse, summary="List subtasks of a goal")
async def list_subtasks(
    goal_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubtaskService = Depends(get_subtask_service),
):
    return await service.list_subtasks(user_id, goal_id, PageQuery(page=page, limit=limit))


@router.post(
    "",
    response_model=SubtaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a subtask",
)
async def create_subtask(
    goal_id: uuid.UUID,
    body: CreateSubtaskRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubtaskService = Depends(get_subtask_service),
):
    return await service.create_subtask(user_id, goal_id, **body.model_dump())


@router.get("/{subtask_id}", response_model=SubtaskResponse, summary="Get a subtask")
async def get_subtask(
    goal_id: uuid.UUID,
    subtask_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubtaskService = Depends(get_subtask_service),
):
    return await service.get_subtask(user_id, goal_id, subtask_id)


@router.patch("/{subtask_id}", response_model=SubtaskResponse, summary="Update a subtask")
async def update_subtask(
    goal_id: uuid.UUID,
    subtask_id: uuid.UUID,
    body: UpdateSubtaskRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubtaskService = Depends(get_subtask_service),
):
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key in CLEARABLE_FIELDS
    }
    return await service.update_subtask(user_id, goal_id, subtask_id, **changes)


@router.delete(
    "/{subtask_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a subtask",
)
async def delete_subtask(
    goal_id: uuid.UUID,
    subtask_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: SubtaskService = Depends(get_subtask_service),
):
    await service.delete_subtask(user_id, goal_id, subtask_id)
