"""
SQLAlchemy 2.0 ORM models for Goalpost.

All models use the modern Mapped/mapped_column syntax.
Ownership is enforced at the service layer: goals and rewards belong to a
user, subtasks belong to a goal and therefore to the goal's owner.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Unicode,
)
from sqlalchemy import (
    Enum as SAEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.core.models import GoalStatus, RewardType, SubtaskStatus, UserRole


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def new_uuid() -> uuid.UUID:
    """Generate a new UUID4."""
    return uuid.uuid4()


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# ─── User ─────────────────────────────────────────────────────


class User(Base):
    """User account; owns goals and rewards."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    username: Mapped[str] = mapped_column(Unicode(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(Unicode(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(
        SAEnum(*_enum_values(UserRole), name="user_role"),
        default=UserRole.USER.value,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    goals: Mapped[list["Goal"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    rewards: Mapped[list["Reward"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


# ─── Rewards ──────────────────────────────────────────────────


class Reward(Base):
    """
    A reward a user promises themselves for completing goals.

    Public rewards (created by admins) are visible to every user.
    """

    __tablename__ = "rewards"
    __table_args__ = (
        Index("ix_rewards_user_id", "user_id"),
        Index("ix_rewards_user_claimed", "user_id", "is_claimed"),
        Index("ix_rewards_public", "public"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        SAEnum(*_enum_values(RewardType), name="reward_type"),
        nullable=False,
    )
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    category: Mapped[str | None] = mapped_column(Unicode(100), nullable=True)
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="rewards")
    goals: Mapped[list["Goal"]] = relationship(back_populates="reward")


# ─── Goals & Subtasks ─────────────────────────────────────────


class Goal(Base):
    """A user goal. ``progress`` is derived from its subtasks."""

    __tablename__ = "goals"
    __table_args__ = (
        Index("ix_goals_user_id", "user_id"),
        Index("ix_goals_user_status", "user_id", "status"),
        Index("ix_goals_reward_id", "reward_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reward_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("rewards.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(Unicode(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        SAEnum(*_enum_values(GoalStatus), name="goal_status"),
        default=GoalStatus.ACTIVE.value,
        nullable=False,
    )
    progress: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="goals")
    reward: Mapped["Reward | None"] = relationship(back_populates="goals")
    subtasks: Mapped[list["Subtask"]] = relationship(
        back_populates="goal", cascade="all, delete-orphan", passive_deletes=True
    )


class Subtask(Base):
    """A step towards a goal, with its own status and 0-100 progress."""

    __tablename__ = "subtasks"
    __table_args__ = (
        Index("ix_subtasks_goal_id", "goal_id"),
        Index("ix_subtasks_due_date", "due_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=new_uuid
    )
    goal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Unicode(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(
        SAEnum(*_enum_values(SubtaskStatus), name="subtask_status"),
        default=SubtaskStatus.PENDING.value,
        nullable=False,
    )
    progress: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    goal: Mapped["Goal"] = relationship(back_populates="subtasks")
