"""
User profile API endpoints.

Provides:
- GET /api/v1/users/profile: Current user profile (cached)
- PUT /api/v1/users/profile: Update username and/or email
- PUT /api/v1/users/password: Change password
"""

import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.api.dependencies import get_user_service
from app.middleware.auth_middleware import get_current_user_id
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


# ─── Request / Response Schemas ──────────────────────────────


class UserProfileResponse(BaseModel):
    """User profile response."""
    id: str
    username: str
    email: str
    role: str
    created_at: str | None = None
    updated_at: str | None = None


class UpdateProfileRequest(BaseModel):
    """Update profile request; the role is not client-writable."""
    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(default=None, min_length=3, max_length=50)
    email: EmailStr | None = None


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


# ─── Endpoints ───────────────────────────────────────────────


@router.get(
    "/profile",
    response_model=UserProfileResponse,
    summary="Get current user profile",
)
async def get_profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    return await service.get_profile(user_id)


@router.put(
    "/profile",
    response_model=UserProfileResponse,
    summary="Update current user profile",
)
async def update_profile(
    body: UpdateProfileRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    return await service.update_profile(user_id, username=body.username, email=body.email)


@router.put(
    "/password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password",
)
async def change_password(
    body: ChangePasswordRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    await service.change_password(user_id, body.current_password, body.new_password)
