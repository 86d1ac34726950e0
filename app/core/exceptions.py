"""
Custom exception hierarchy for Goalpost.

All application-specific exceptions inherit from GoalpostError,
enabling catch-all handling at the API layer while allowing
fine-grained handling in business logic.

Cache failures are deliberately absent: the cache layer reports them as
values (see ``app.services.cache_service.CacheResult``) and never raises.
"""


class GoalpostError(Exception):
    """Base exception for all Goalpost application errors."""

    def __init__(self, message: str = "", details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ─── Lookup / Access Errors ───────────────────────────────────


class NotFoundError(GoalpostError):
    """The requested entity does not exist."""

    def __init__(self, entity: str, entity_id: str, **kwargs):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message=f"{entity} not found", **kwargs)


class ForbiddenError(GoalpostError):
    """The entity exists but belongs to another user."""

    pass


# ─── Input Errors ─────────────────────────────────────────────


class DomainValidationError(GoalpostError):
    """Request data is well-formed but violates a business rule."""

    pass


class ConflictError(GoalpostError):
    """A uniqueness constraint would be violated (duplicate email, username)."""

    pass


# ─── Authentication Errors ────────────────────────────────────


class AuthenticationError(GoalpostError):
    """Invalid credentials or authentication failure."""

    pass


class TokenError(AuthenticationError):
    """JWT token is invalid, expired, or malformed."""

    pass


# ─── Availability Errors ─────────────────────────────────────


class ServiceUnavailableError(GoalpostError):
    """A required backend could not complete the request; the client may retry."""

    pass


# ─── Reward Errors ────────────────────────────────────────────


class RewardClaimError(GoalpostError):
    """A reward cannot be claimed in its current state."""

    def __init__(self, reward_id: str, reason: str, **kwargs):
        self.reward_id = reward_id
        self.reason = reason
        super().__init__(message=f"Cannot claim reward: {reason}", **kwargs)
