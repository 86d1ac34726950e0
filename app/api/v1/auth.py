"""
Authentication API endpoints.

Provides:
- POST /api/v1/auth/register: User registration
- POST /api/v1/auth/login: User login (returns JWT)
- POST /api/v1/auth/refresh: Refresh access token
- POST /api/v1/auth/logout: Revoke a refresh token

Domain errors (conflict, bad credentials, bad token) are mapped to HTTP
responses by the global exception handler.
"""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from app.api.dependencies import get_user_service
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ─── Request / Response Schemas ──────────────────────────────


class RegisterRequest(BaseModel):
    """User registration request."""
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    """User login request."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Token refresh request."""
    refresh_token: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    """Authentication response with user info and tokens."""
    user: dict
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenResponse(BaseModel):
    """Token refresh response: new access token only."""
    access_token: str
    token_type: str = "bearer"


# ─── Endpoints ───────────────────────────────────────────────


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    body: RegisterRequest,
    service: UserService = Depends(get_user_service),
):
    """
    Register a new user account.

    Returns JWT access and refresh tokens on success.
    The access token expires in 15 minutes; the refresh token in 7 days.
    """
    return await service.register(
        username=body.username,
        email=body.email,
        password=body.password,
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login with email and password",
)
async def login(
    body: LoginRequest,
    service: UserService = Depends(get_user_service),
):
    return await service.authenticate(email=body.email, password=body.password)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
)
async def refresh(
    body: RefreshRequest,
    service: UserService = Depends(get_user_service),
):
    """Exchange a valid refresh token for a new access token."""
    return await service.refresh_access_token(body.refresh_token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a refresh token",
)
async def logout(
    body: RefreshRequest,
    service: UserService = Depends(get_user_service),
):
    """
    Put the refresh token on the denylist so it can no longer be exchanged.

    Answers 503 if the denylist cannot be written; the client should retry.
    """
    await service.logout(body.refresh_token)
