"""
Reward API endpoints.

Provides:
- GET    /api/v1/rewards: List own and public rewards (type / claim-state filters; cached)
- POST   /api/v1/rewards: Create a reward
- GET    /api/v1/rewards/{reward_id}: Get a reward (cached)
- PUT    /api/v1/rewards/{reward_id}: Update a reward
- DELETE /api/v1/rewards/{reward_id}: Delete a reward
- POST   /api/v1/rewards/{reward_id}/goals/{goal_id}: Attach to a goal
- DELETE /api/v1/rewards/{reward_id}/goals/{goal_id}: Detach from a goal
- GET    /api/v1/rewards/{reward_id}/claimable: Check claim eligibility
- POST   /api/v1/rewards/{reward_id}/claim: Claim the reward
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.dependencies import get_reward_service
from app.core.exceptions import DomainValidationError
from app.core.models import MAX_PAGE_SIZE, ClaimFilter, RewardListQuery, RewardType, UserRole
from app.middleware.auth_middleware import get_current_user_id, get_current_user_role
from app.services.reward_service import RewardService

router = APIRouter(prefix="/rewards", tags=["Rewards"])


# ─── Request / Response Schemas ──────────────────────────────


class RewardResponse(BaseModel):
    id: str
    user_id: str
    type: RewardType
    value: float | None = None
    description: str
    category: str | None = None
    expiry_date: str | None = None
    public: bool = False
    is_claimed: bool
    claimed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class RewardPageResponse(BaseModel):
    items: list[RewardResponse]
    total: int
    page: int
    limit: int
    pages: int


class ClaimableResponse(BaseModel):
    claimable: bool
    reason: str | None = None


class CreateRewardRequest(BaseModel):
    type: RewardType
    value: float | None = Field(default=None, ge=0)
    description: str = Field(default="", max_length=2000)
    category: str | None = Field(default=None, max_length=100)
    expiry_date: datetime | None = None
    public: bool | None = None


class UpdateRewardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: RewardType | None = None
    value: float | None = Field(default=None, ge=0)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=100)
    expiry_date: datetime | None = None
    public: bool | None = None


# Fields that may be explicitly cleared with null
CLEARABLE_FIELDS = frozenset({"value", "category", "expiry_date"})


def _parse_type_filter(value: str | None) -> RewardType | None:
    if value is None or value == "" or value == "all":
        return None
    try:
        return RewardType(value)
    except ValueError as e:
        raise DomainValidationError(f"Invalid reward type filter: {value!r}") from e


# ─── Endpoints ───────────────────────────────────────────────


@router.get("", response_model=RewardPageResponse, summary="List rewards")
async def list_rewards(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    type_filter: str | None = Query(None, alias="type"),
    status_filter: ClaimFilter = Query(ClaimFilter.ALL, alias="status"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    """``status`` is ``all``, ``claimed`` or ``unclaimed``."""
    query = RewardListQuery(
        page=page,
        limit=limit,
        type=_parse_type_filter(type_filter),
        status=status_filter,
    )
    return await service.list_rewards(user_id, query)


@router.post(
    "",
    response_model=RewardResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a reward",
)
async def create_reward(
    body: CreateRewardRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_user_role),
    service: RewardService = Depends(get_reward_service),
):
    """Admins create public rewards unless ``public`` is false."""
    return await service.create_reward(user_id, role=role, **body.model_dump())


@router.get("/{reward_id}", response_model=RewardResponse, summary="Get a reward")
async def get_reward(
    reward_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    return await service.get_reward(user_id, reward_id)


@router.put("/{reward_id}", response_model=RewardResponse, summary="Update a reward")
async def update_reward(
    reward_id: uuid.UUID,
    body: UpdateRewardRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_user_role),
    service: RewardService = Depends(get_reward_service),
):
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key in CLEARABLE_FIELDS
    }
    return await service.update_reward(user_id, reward_id, role=role, **changes)


@router.delete(
    "/{reward_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a reward",
)
async def delete_reward(
    reward_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_user_role),
    service: RewardService = Depends(get_reward_service),
):
    await service.delete_reward(user_id, reward_id, role=role)


@router.post(
    "/{reward_id}/goals/{goal_id}",
    response_model=RewardResponse,
    summary="Attach a reward to a goal",
)
async def attach_reward(
    reward_id: uuid.UUID,
    goal_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    return await service.attach_to_goal(user_id, reward_id, goal_id)


@router.delete(
    "/{reward_id}/goals/{goal_id}",
    response_model=RewardResponse,
    summary="Detach a reward from a goal",
)
async def detach_reward(
    reward_id: uuid.UUID,
    goal_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    return await service.detach_from_goal(user_id, reward_id, goal_id)


@router.get(
    "/{reward_id}/claimable",
    response_model=ClaimableResponse,
    summary="Check whether a reward can be claimed",
)
async def check_claimable(
    reward_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    return (await service.check_claimable(user_id, reward_id)).to_dict()


@router.post(
    "/{reward_id}/claim",
    response_model=RewardResponse,
    summary="Claim a reward",
)
async def claim_reward(
    reward_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: RewardService = Depends(get_reward_service),
):
    """Claim a reward whose attached goals are all completed."""
    return await service.claim_reward(user_id, reward_id)
