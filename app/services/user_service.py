"""
User management service: registration, authentication, JWT tokens and profile.

Handles:
- User registration with username/email/password (bcrypt hashed)
- Authentication with JWT access + refresh token generation
- Token refresh for expired access tokens
- Logout by putting the refresh token on the cache-backed denylist
- Cached profile reads, profile updates and password changes

Security:
- Passwords hashed with bcrypt (12 salt rounds by default)
- Access tokens: short-lived (15 min, configurable)
- Refresh tokens: long-lived (7 days, configurable), each with a unique jti
- Tokens signed with HS256 using app secret_key
- The role claim is never taken from client input
"""

import hashlib
import logging
import uuid
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from app.config import Settings, get_settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    DomainValidationError,
    NotFoundError,
    ServiceUnavailableError,
    TokenError,
)
from app.core.models import UserRole
from app.db.mappers import user_to_dict
from app.db.models import User
from app.db.repositories.user_repo import UserRepository
from app.services.cache_layer import CacheInvalidator, ReadThroughCache, log_cache_failure
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

MIN_PASSWORD_LENGTH = 8


# ─── Service ────────────────────────────────────────────────


class UserService:
    """
    Manages user accounts, authentication, and JWT token lifecycle.

    Usage:
        service = UserService(user_repo, cache)
        tokens = await service.register("ada", "ada@example.com", "securepass123")
        tokens = await service.authenticate("ada@example.com", "securepass123")
        new_tokens = await service.refresh_access_token(refresh_token)
        await service.logout(refresh_token)
    """

    BCRYPT_ROUNDS = 12

    def __init__(
        self,
        user_repo: UserRepository,
        cache: CacheService,
        settings: Settings | None = None,
    ):
        self._repo = user_repo
        self._cache = cache
        self._keys = cache.keys
        self._reader = ReadThroughCache(cache)
        self._invalidator = CacheInvalidator(cache)
        self._settings = settings or get_settings()

    # ─── Registration ────────────────────────────────────────

    async def register(self, username: str, email: str, password: str) -> dict:
        """
        Register a new user account.

        Returns:
            Dict with user info and JWT tokens:
            {
                "user": {"id", "username", "email", "role", ...},
                "access_token": str,
                "refresh_token": str,
                "token_type": "bearer",
            }

        Raises:
            DomainValidationError: Malformed email or too-short password.
            ConflictError: Email or username already taken.
        """
        username = username.strip()
        email = _normalize_email(email)
        _check_password(password)
        if not username:
            raise DomainValidationError("Username is required")

        if await self._repo.email_exists(email):
            raise ConflictError(f"Email '{email}' is already registered")
        if await self._repo.username_exists(username):
            raise ConflictError(f"Username '{username}' is already taken")

        user = await self._repo.create(
            username=username,
            email=email,
            password_hash=self._hash_password(password),
            role=UserRole.USER.value,
        )
        await self._repo.session.commit()
        logger.info(f"Registered new user: {username} (id: {user.id})")

        return self._token_response(user)

    # ─── Authentication ──────────────────────────────────────

    async def authenticate(self, email: str, password: str) -> dict:
        """
        Authenticate a user and return JWT tokens.

        Raises:
            AuthenticationError: If credentials are invalid.
        """
        user = await self._repo.find_by_email(email.strip().lower())
        if user is None or not self._verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")

        logger.info(f"User authenticated: {user.id}")
        return self._token_response(user)

    # ─── Token Refresh ───────────────────────────────────────

    async def refresh_access_token(self, refresh_token: str) -> dict:
        """
        Generate a new access token from a valid refresh token.

        The role is re-read from the store, so a role change takes effect
        on the next refresh.

        If the denylist cannot be consulted the token is accepted and a
        warning is logged; access tokens stay short-lived either way.

        Raises:
            TokenError: If the refresh token is invalid, expired, of the
                wrong type, revoked, or its user no longer exists.
        """
        payload = self._verify_refresh_token(refresh_token)
        denied = await self._cache.is_token_denied(_token_id(payload, refresh_token))
        if denied.value:
            raise TokenError("Refresh token has been revoked")
        if not denied.ok:
            logger.warning(
                f"Token denylist unavailable, accepting refresh token for {payload.get('sub')}",
                extra={"cache_error": denied.error.kind.value},
            )

        try:
            user = await self._repo.get_by_id(uuid.UUID(payload["sub"]))
        except (KeyError, ValueError) as e:
            raise TokenError("Invalid token subject") from e
        if user is None:
            raise TokenError("User no longer exists")

        return {
            "access_token": self._create_token(user, TOKEN_TYPE_ACCESS),
            "token_type": "bearer",
        }

    def _verify_refresh_token(self, token: str) -> dict:
        payload = self.verify_token(token)
        if payload.get("type") != TOKEN_TYPE_REFRESH:
            raise TokenError("Invalid token type: expected refresh token")
        return payload

    def verify_token(self, token: str) -> dict:
        """
        Verify and decode a JWT token.

        Raises:
            TokenError: If the token is invalid, expired, or malformed.
        """
        try:
            return jwt.decode(
                token,
                self._settings.secret_key,
                algorithms=[self._settings.jwt_algorithm],
            )
        except JWTError as e:
            raise TokenError(f"Invalid or expired token: {e}") from e

    # ─── Logout ──────────────────────────────────────────────

    async def logout(self, refresh_token: str) -> None:
        """
        Revoke a refresh token for the rest of its lifetime.

        Outstanding access tokens are not revoked; they expire on their own.

        Raises:
            TokenError: If the token is invalid, expired or not a refresh token.
            ServiceUnavailableError: If the revocation could not be stored.
        """
        payload = self._verify_refresh_token(refresh_token)
        result = await self._cache.deny_token(
            _token_id(payload, refresh_token), _remaining_lifetime(payload)
        )
        if not result.ok:
            log_cache_failure(result, logging.ERROR)
            raise ServiceUnavailableError("Logout could not be recorded, please retry")
        logger.info(f"Refresh token revoked for user {payload.get('sub')}")

    # ─── Profile ──────────────────────────────────────────────

    async def get_profile(self, user_id: uuid.UUID) -> dict:
        """The user's profile, cached for ``cache_ttl_profile`` seconds."""

        async def load() -> dict:
            user = await self._repo.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", str(user_id))
            return user_to_dict(user)

        return await self._reader.fetch(
            self._keys.user_profile(str(user_id)), load, ttl=self._settings.cache_ttl_profile
        )

    async def update_profile(
        self,
        user_id: uuid.UUID,
        username: str | None = None,
        email: str | None = None,
    ) -> dict:
        """
        Update username and/or email.

        Raises:
            ConflictError: If the new username or email belongs to someone else.
        """
        user = await self._get_user(user_id)
        changes = {}

        if email is not None:
            email = _normalize_email(email)
            existing = await self._repo.find_by_email(email)
            if existing is not None and existing.id != user.id:
                raise ConflictError(f"Email '{email}' is already registered")
            changes["email"] = email

        if username is not None:
            username = username.strip()
            if not username:
                raise DomainValidationError("Username cannot be empty")
            existing = await self._repo.find_by_username(username)
            if existing is not None and existing.id != user.id:
                raise ConflictError(f"Username '{username}' is already taken")
            changes["username"] = username

        if changes:
            user = await self._repo.update(user, **changes)
            await self._repo.session.commit()
            await self._invalidator.invalidate(
                str(user_id), self._keys.user_profile(str(user_id))
            )
        return user_to_dict(user)

    async def change_password(
        self,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password after verifying the current one.

        Raises:
            AuthenticationError: If ``current_password`` is wrong.
        """
        user = await self._get_user(user_id)
        if not self._verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        _check_password(new_password)

        await self._repo.update(user, password_hash=self._hash_password(new_password))
        await self._repo.session.commit()
        logger.info(f"Password changed for user {user_id}")

        await self._invalidator.invalidate(str(user_id), self._keys.user_profile(str(user_id)))

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self._repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    # ─── Password Hashing ────────────────────────────────────

    def _hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def _verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash."""
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    # ─── JWT Token Creation ──────────────────────────────────

    def _create_token(self, user: User, token_type: str) -> str:
        """
        Create a signed JWT token.

        Args:
            user: Token subject.
            token_type: "access" or "refresh".
        """
        now = datetime.now(UTC)
        if token_type == TOKEN_TYPE_ACCESS:
            expires = now + timedelta(minutes=self._settings.jwt_access_token_expire_minutes)
        else:
            expires = now + timedelta(days=self._settings.jwt_refresh_token_expire_days)

        payload = {
            "sub": str(user.id),
            "username": user.username,
            "role": user.role,
            "type": token_type,
            "iat": now,
            "exp": expires,
        }
        if token_type == TOKEN_TYPE_REFRESH:
            payload["jti"] = uuid.uuid4().hex
        return jwt.encode(
            payload,
            self._settings.secret_key,
            algorithm=self._settings.jwt_algorithm,
        )

    def _token_response(self, user: User) -> dict:
        return {
            "user": user_to_dict(user),
            "access_token": self._create_token(user, TOKEN_TYPE_ACCESS),
            "refresh_token": self._create_token(user, TOKEN_TYPE_REFRESH),
            "token_type": "bearer",
        }


# ─── Validation Helpers ─────────────────────────────────────


def _normalize_email(email: str) -> str:
    email = email.strip().lower()
    if not email or "@" not in email:
        raise DomainValidationError("Invalid email address")
    return email


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise DomainValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def _token_id(payload: dict, token: str) -> str:
    """The jti claim, or a digest of the token for tokens issued without one."""
    return payload.get("jti") or hashlib.sha256(token.encode("utf-8")).hexdigest()


def _remaining_lifetime(payload: dict) -> int:
    """Seconds until the token expires, at least 1."""
    remaining = int(payload["exp"]) - int(datetime.now(UTC).timestamp())
    return max(remaining, 1)
