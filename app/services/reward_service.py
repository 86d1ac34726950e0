"""
Reward management service.

Rewards belong to a user and can be attached to any number of that user's
goals. A reward becomes claimable once it has at least one attached goal
and every attached goal is completed; it can be claimed exactly once.

Public rewards are a shared catalog: every user sees them in their list
and can read them, but only admins may publish, edit or delete them.
Admin-created rewards are public unless the admin says otherwise.
Attaching and claiming stay with the owner.

Every reward list is also tracked in a registry shared by all users, so
a write that touches a public reward drops everyone's cached lists.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from app.config import Settings, get_settings
from app.core.exceptions import (
    DomainValidationError,
    ForbiddenError,
    NotFoundError,
    RewardClaimError,
)
from app.core.models import (
    VALUED_REWARD_TYPES,
    GoalStatus,
    RewardListQuery,
    RewardType,
    UserRole,
)
from app.db.mappers import page_to_dict, reward_to_dict
from app.db.models import Reward
from app.db.repositories.goal_repo import GoalRepository
from app.db.repositories.reward_repo import RewardRepository
from app.services.cache_layer import CacheInvalidator, ReadThroughCache
from app.services.cache_service import CacheService
from app.services.goal_service import GoalService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"type", "value", "description", "category", "expiry_date", "public"}
)


@dataclass(frozen=True)
class Claimability:
    """Whether a reward can be claimed right now, and why not."""

    claimable: bool
    reason: str = ""

    def to_dict(self) -> dict:
        return {"claimable": self.claimable, "reason": self.reason or None}


def validate_reward_value(reward_type: RewardType, value: float | None) -> None:
    """Points, discounts and experiences need a positive numeric value."""
    if reward_type in VALUED_REWARD_TYPES and (value is None or value <= 0):
        raise DomainValidationError(
            f"Reward type '{reward_type.value}' requires a positive value"
        )
    if value is not None and value < 0:
        raise DomainValidationError("Reward value cannot be negative")


class RewardService:
    """
    Reward CRUD, goal attachment and claiming, with read-through caching.

    Usage:
        service = RewardService(reward_repo, goal_repo, goal_service, cache)
        if (await service.check_claimable(user_id, reward_id)).claimable:
            await service.claim_reward(user_id, reward_id)
    """

    def __init__(
        self,
        reward_repo: RewardRepository,
        goal_repo: GoalRepository,
        goal_service: GoalService,
        cache: CacheService,
        settings: Settings | None = None,
        clock=None,
    ):
        self._rewards = reward_repo
        self._goals = goal_repo
        self._goal_service = goal_service
        self._keys = cache.keys
        self._reader = ReadThroughCache(cache)
        self._invalidator = CacheInvalidator(cache)
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(UTC))

    # ─── Reads ───────────────────────────────────────────────

    async def list_rewards(self, user_id: uuid.UUID, query: RewardListQuery) -> dict:
        uid = str(user_id)

        async def load() -> dict:
            rewards, total = await self._rewards.find_by_user(user_id, query)
            return page_to_dict(
                [reward_to_dict(r) for r in rewards], total, query.page, query.limit
            )

        return await self._reader.fetch(
            self._keys.rewards(uid, query.cache_params()),
            load,
            ttl=self._settings.cache_ttl_reward_list,
            track_user_id=uid,
            shared_registry=self._keys.public_rewards_registry(),
        )

    async def get_reward(self, user_id: uuid.UUID, reward_id: uuid.UUID) -> dict:
        """
        A single reward, served from cache when possible.

        Readable by its owner, and by anyone when public.
        """

        async def load() -> dict:
            reward = await self._rewards.get_by_id(reward_id)
            if reward is None:
                raise NotFoundError("Reward", str(reward_id))
            return reward_to_dict(reward)

        reward = await self._reader.fetch(
            self._keys.reward(str(reward_id)), load, ttl=self._settings.cache_ttl_reward
        )
        if not reward.get("public") and reward["user_id"] != str(user_id):
            raise ForbiddenError("Not authorized to access this reward")
        return reward

    async def check_claimable(self, user_id: uuid.UUID, reward_id: uuid.UUID) -> Claimability:
        """Evaluate the claim rules against the store, bypassing the cache."""
        reward = await self._get_owned(user_id, reward_id)
        return await self._claimability(reward)

    # ─── Writes ──────────────────────────────────────────────

    async def create_reward(
        self,
        user_id: uuid.UUID,
        type: RewardType,
        value: float | None = None,
        description: str = "",
        category: str | None = None,
        expiry_date: datetime | None = None,
        public: bool | None = None,
        role: UserRole = UserRole.USER,
    ) -> dict:
        """
        Create a reward owned by ``user_id``.

        ``public`` defaults to True for admins and False for everyone else.

        Raises:
            DomainValidationError: Invalid value for the reward type.
            ForbiddenError: A non-admin asked for a public reward.
        """
        is_admin = role == UserRole.ADMIN
        if public and not is_admin:
            raise ForbiddenError("Only admins can create public rewards")
        if public is None:
            public = is_admin
        reward_type = RewardType(type)
        validate_reward_value(reward_type, value)
        reward = await self._rewards.create(
            user_id=user_id,
            type=reward_type.value,
            value=value,
            description=description or "",
            category=category,
            expiry_date=expiry_date,
            public=public,
        )
        await self._rewards.session.commit()
        logger.info(f"Reward created: {reward.id} (user: {user_id}, public: {public})")

        await self._invalidator.invalidate(
            str(user_id), shared_registry=self._shared_registry(public)
        )
        return reward_to_dict(reward)

    async def update_reward(
        self,
        user_id: uuid.UUID,
        reward_id: uuid.UUID,
        role: UserRole = UserRole.USER,
        **changes,
    ) -> dict:
        """
        Update a reward's fields. Claimed rewards are frozen.

        Raises:
            DomainValidationError: Unknown field, invalid value for the type,
                or the reward was already claimed.
            ForbiddenError: Not the owner of a private reward, a non-admin
                touching a public reward, or a non-admin publishing one.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise DomainValidationError(
                f"Cannot update reward fields: {', '.join(sorted(unknown))}"
            )
        reward = await self._get_writable(user_id, reward_id, role)
        if changes.get("public") and role != UserRole.ADMIN:
            raise ForbiddenError("Only admins can make a reward public")
        if reward.is_claimed:
            raise DomainValidationError("A claimed reward cannot be modified")

        reward_type = RewardType(changes.get("type", reward.type))
        validate_reward_value(reward_type, changes.get("value", reward.value))
        if "type" in changes:
            changes["type"] = reward_type.value
        if "public" in changes:
            changes["public"] = bool(changes["public"])

        was_public = reward.public
        reward = await self._rewards.update(reward, **changes)
        await self._rewards.session.commit()

        await self._invalidator.invalidate(
            str(reward.user_id),
            self._keys.reward(str(reward_id)),
            shared_registry=self._shared_registry(was_public, reward.public),
        )
        return reward_to_dict(reward)

    async def delete_reward(
        self,
        user_id: uuid.UUID,
        reward_id: uuid.UUID,
        role: UserRole = UserRole.USER,
    ) -> None:
        """Delete a reward, detaching it from every goal that referenced it."""
        reward = await self._get_writable(user_id, reward_id, role)
        owner_id, public = str(reward.user_id), reward.public
        goals = await self._goals.find_by_reward(reward.id)
        for goal in goals:
            goal.reward_id = None
        await self._rewards.delete(reward)
        await self._rewards.session.commit()
        logger.info(f"Reward deleted: {reward_id} (detached from {len(goals)} goals)")

        goal_keys = [self._keys.goal(str(goal.id)) for goal in goals]
        await self._invalidator.invalidate(
            owner_id,
            self._keys.reward(str(reward_id)),
            *goal_keys,
            shared_registry=self._shared_registry(public),
        )

    async def attach_to_goal(
        self,
        user_id: uuid.UUID,
        reward_id: uuid.UUID,
        goal_id: uuid.UUID,
    ) -> dict:
        """Attach the reward to a goal, replacing any reward the goal had."""
        reward = await self._get_owned(user_id, reward_id)
        if reward.is_claimed:
            raise DomainValidationError("A claimed reward cannot be attached to goals")
        goal = await self._goal_service.get_owned_goal(user_id, goal_id)
        goal.reward_id = reward.id
        await self._rewards.session.commit()

        await self._invalidator.invalidate(
            str(user_id), self._keys.reward(str(reward_id)), self._keys.goal(str(goal_id))
        )
        return reward_to_dict(reward)

    async def detach_from_goal(
        self,
        user_id: uuid.UUID,
        reward_id: uuid.UUID,
        goal_id: uuid.UUID,
    ) -> dict:
        reward = await self._get_owned(user_id, reward_id)
        goal = await self._goal_service.get_owned_goal(user_id, goal_id)
        if goal.reward_id != reward.id:
            raise DomainValidationError("Reward is not attached to this goal")
        goal.reward_id = None
        await self._rewards.session.commit()

        await self._invalidator.invalidate(
            str(user_id), self._keys.reward(str(reward_id)), self._keys.goal(str(goal_id))
        )
        return reward_to_dict(reward)

    async def claim_reward(self, user_id: uuid.UUID, reward_id: uuid.UUID) -> dict:
        """
        Claim a reward.

        Raises:
            RewardClaimError: Already claimed, expired, no attached goals,
                or some attached goal is not completed.
        """
        reward = await self._get_owned(user_id, reward_id)
        verdict = await self._claimability(reward)
        if not verdict.claimable:
            raise RewardClaimError(str(reward_id), verdict.reason)

        reward = await self._rewards.update(
            reward, is_claimed=True, claimed_at=self._clock()
        )
        await self._rewards.session.commit()
        logger.info(f"Reward claimed: {reward_id} (user: {user_id})")

        await self._invalidator.invalidate(
            str(user_id),
            self._keys.reward(str(reward_id)),
            shared_registry=self._shared_registry(reward.public),
        )
        return reward_to_dict(reward)

    # ─── Helpers ─────────────────────────────────────────────

    async def _get_owned(self, user_id: uuid.UUID, reward_id: uuid.UUID) -> Reward:
        reward = await self._rewards.get_by_id(reward_id)
        if reward is None:
            raise NotFoundError("Reward", str(reward_id))
        if reward.user_id != user_id:
            raise ForbiddenError("Not authorized to access this reward")
        return reward

    async def _get_writable(
        self, user_id: uuid.UUID, reward_id: uuid.UUID, role: UserRole
    ) -> Reward:
        """Public rewards are writable by any admin, private ones only by their owner."""
        reward = await self._rewards.get_by_id(reward_id)
        if reward is None:
            raise NotFoundError("Reward", str(reward_id))
        if reward.public:
            if role != UserRole.ADMIN:
                raise ForbiddenError("Only admins can modify public rewards")
        elif reward.user_id != user_id:
            raise ForbiddenError("Not authorized to access this reward")
        return reward

    def _shared_registry(self, *public_flags: bool) -> str | None:
        """The cross-user registry to drain when any of the flags is set."""
        return self._keys.public_rewards_registry() if any(public_flags) else None

    async def _claimability(self, reward: Reward) -> Claimability:
        if reward.is_claimed:
            return Claimability(False, "reward has already been claimed")
        if reward.expiry_date is not None and _as_utc(reward.expiry_date) < self._clock():
            return Claimability(False, "reward has expired")
        goals = await self._goals.find_by_reward(reward.id)
        if not goals:
            return Claimability(False, "reward is not attached to any goal")
        pending = [g for g in goals if g.status != GoalStatus.COMPLETED]
        if pending:
            return Claimability(False, f"{len(pending)} attached goal(s) not completed")
        return Claimability(True)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
