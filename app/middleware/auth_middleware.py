"""
JWT authentication dependencies.

Provides:
- get_current_user: extracts and verifies the Bearer access token,
  returning its decoded payload.
- get_current_user_id: the authenticated user's id as a UUID, which is
  what every service method takes.
- get_current_user_role: the role claim, for endpoints with admin-only
  branches. Anything unrecognised counts as a plain user.

Usage in endpoints:
    @router.get("/goals")
    async def list_goals(user_id: uuid.UUID = Depends(get_current_user_id)):
        ...
"""

import logging
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import Settings, get_settings
from app.core.models import UserRole

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_token(token: str, settings: Settings) -> dict:
    """
    Decode and verify a JWT token.

    Raises:
        HTTPException 401 if token is invalid, expired or has no subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise _unauthorized("Invalid or expired token") from e
    if payload.get("sub") is None:
        raise _unauthorized("Invalid token: missing subject")
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    FastAPI dependency: extract and verify a JWT access token.

    Returns the decoded payload (sub, username, role, type, iat, exp).

    Raises:
        HTTPException 401 if the token is missing, invalid, expired or
        is not an access token.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    payload = _decode_token(credentials.credentials, settings)
    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type: access token required")
    return payload


async def get_current_user_id(payload: dict = Depends(get_current_user)) -> uuid.UUID:
    """FastAPI dependency: the authenticated user's id."""
    try:
        return uuid.UUID(payload["sub"])
    except ValueError as e:
        raise _unauthorized("Invalid user ID in token") from e


async def get_current_user_role(payload: dict = Depends(get_current_user)) -> UserRole:
    """FastAPI dependency: the authenticated user's role."""
    try:
        return UserRole(payload.get("role"))
    except ValueError:
        return UserRole.USER
