"""
Unit tests for JWT auth dependencies: token decoding, current user, id and role.

Tests _decode_token, get_current_user, get_current_user_id and
get_current_user_role in isolation (no FastAPI app needed, just function
calls).
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.core.models import UserRole
from app.middleware.auth_middleware import (
    _decode_token,
    get_current_user,
    get_current_user_id,
    get_current_user_role,
)
from tests.conftest import make_settings

SETTINGS = make_settings(
    secret_key="test-secret-key-for-middleware-tests-64-chars-padding-here-ok"
)


def _make_token(
    token_type: str = "access",
    user_id: str | None = None,
    secret: str | None = None,
    expired: bool = False,
    include_sub: bool = True,
) -> str:
    """Helper to create test JWT tokens."""
    now = datetime.now(UTC)
    payload = {
        "username": "ada",
        "role": "user",
        "type": token_type,
        "iat": now,
        "exp": now - timedelta(hours=1) if expired else now + timedelta(hours=1),
    }
    if include_sub:
        payload["sub"] = user_id or str(uuid.uuid4())
    return jwt.encode(payload, secret or SETTINGS.secret_key, algorithm=SETTINGS.jwt_algorithm)


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ─── _decode_token Tests ────────────────────────────────────


class TestDecodeToken:
    """Tests for the low-level token decoder."""

    def test_decode_valid_token(self):
        user_id = str(uuid.uuid4())
        payload = _decode_token(_make_token(user_id=user_id), SETTINGS)
        assert payload["sub"] == user_id
        assert payload["username"] == "ada"

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            _decode_token(_make_token(expired=True), SETTINGS)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_wrong_secret(self):
        with pytest.raises(HTTPException) as exc_info:
            _decode_token(_make_token(secret="another-secret"), SETTINGS)
        assert exc_info.value.detail == "Invalid or expired token"

    def test_garbage(self):
        with pytest.raises(HTTPException):
            _decode_token("not.a.jwt", SETTINGS)

    def test_missing_subject(self):
        with pytest.raises(HTTPException, match="missing subject"):
            _decode_token(_make_token(include_sub=False), SETTINGS)


# ─── Dependency Tests ───────────────────────────────────────


class TestGetCurrentUser:
    async def test_access_token_accepted(self):
        payload = await get_current_user(_credentials(_make_token()), SETTINGS)
        assert payload["type"] == "access"

    async def test_refresh_token_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_credentials(_make_token("refresh")), SETTINGS)
        assert exc_info.value.status_code == 401
        assert "access token required" in exc_info.value.detail

    async def test_missing_credentials(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None, SETTINGS)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


class TestGetCurrentUserId:
    async def test_returns_uuid(self):
        user_id = uuid.uuid4()
        assert await get_current_user_id({"sub": str(user_id)}) == user_id

    async def test_malformed_subject(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id({"sub": "not-a-uuid"})
        assert exc_info.value.status_code == 401


class TestGetCurrentUserRole:
    @pytest.mark.parametrize(
        ("claim", "role"), [("admin", UserRole.ADMIN), ("user", UserRole.USER)]
    )
    async def test_known_roles(self, claim, role):
        assert await get_current_user_role({"role": claim}) == role

    @pytest.mark.parametrize("claim", [None, "root", ""])
    async def test_unknown_role_is_a_plain_user(self, claim):
        assert await get_current_user_role({"role": claim}) == UserRole.USER
