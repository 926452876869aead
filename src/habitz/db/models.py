"""ORM models for the habitz schema.

Tables mirror alembic/versions/001_habitz_core.py. User ids are opaque
strings issued by the upstream auth service.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from habitz.db.base import Base, BigIntPK


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


CHECKIN_TYPES = ("activity", "nutrition")
ACHIEVEMENT_CATEGORIES = ("general", "activity", "nutrition", "streak")
ACHIEVEMENT_TIERS = ("bronze", "silver", "gold")
PARTICIPANT_STATUSES = ("pending", "accepted", "declined")


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class Profile(Base):
    """Maps to the 'profiles' table. Streak and XP columns are engine-owned."""

    __tablename__ = "profiles"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    streak_blocks: Mapped[int] = mapped_column(Integer, default=2, server_default="2")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_streak_update: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_block_reset: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# Check-ins & points
# ---------------------------------------------------------------------------


class ActivityType(Base):
    """Maps to the 'activity_types' reference table."""

    __tablename__ = "activity_types"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_habit_forming: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")


class UserCheckIn(Base):
    """Maps to the append-only 'user_checkins' ledger.

    ``checkin_date`` is the reference-clock calendar day of ``created_at``;
    the unique constraint on it is what makes duplicate prevention atomic.
    """

    __tablename__ = "user_checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "type", "checkin_date", name="uq_user_checkins_user_type_day"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    activity_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("activity_types.id"), nullable=True
    )
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    activity_type: Mapped[ActivityType | None] = relationship("ActivityType", lazy="joined")


class ActivityTypePoints(Base):
    """Maps to 'user_activity_points'. One row per (user, activity type)."""

    __tablename__ = "user_activity_points"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_type_id", name="uq_user_activity_points_user_type"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    activity_type_id: Mapped[int] = mapped_column(Integer, ForeignKey("activity_types.id"), nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementActivity(Base):
    """Maps to 'achievement_activities' (achievement <-> activity type links)."""

    __tablename__ = "achievement_activities"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    activity_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("activity_types.id", ondelete="CASCADE"), primary_key=True
    )


class Achievement(Base):
    """Maps to the static 'achievements' reference table."""

    __tablename__ = "achievements"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False, default="bronze")
    is_generic: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    required_points: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    sort_order: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    activities: Mapped[list[AchievementActivity]] = relationship(
        "AchievementActivity", lazy="selectin", cascade="all, delete-orphan"
    )

    @property
    def activity_type_ids(self) -> frozenset[int]:
        return frozenset(link.activity_type_id for link in self.activities)


class UserAchievementPoints(Base):
    """Maps to 'user_achievement_points': persisted progress snapshot per pair."""

    __tablename__ = "user_achievement_points"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement_points_pair"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(Integer, ForeignKey("achievements.id"), nullable=False)
    current_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class UserAchievement(Base):
    """Maps to 'user_achievements'. Append-only, one row per pair."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_pair"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(Integer, ForeignKey("achievements.id"), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    """Maps to the 'challenges' table."""

    __tablename__ = "challenges"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    creator_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    activity_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("activity_types.id"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    has_bet: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    bet_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    activity_type: Mapped[ActivityType | None] = relationship("ActivityType", lazy="joined")


class ChallengeParticipant(Base):
    """Maps to 'challenge_participants'. Status only moves out of 'pending'."""

    __tablename__ = "challenge_participants"
    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participants_pair"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Written once, in the same transaction as the challenge summary
    final_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    net_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)


class ChallengeSummary(Base):
    """Maps to 'challenge_summaries'. Written once per challenge."""

    __tablename__ = "challenge_summaries"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("challenges.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    winner_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bet_pool: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    completion_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# Social
# ---------------------------------------------------------------------------


class FriendRequest(Base):
    """Maps to 'friend_requests'."""

    __tablename__ = "friend_requests"
    __table_args__ = (
        UniqueConstraint("sender_id", "receiver_id", name="uq_friend_requests_pair"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Friendship(Base):
    """Maps to 'friendships'. Stored in both directions."""

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendships_pair"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    friend_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Notification(Base):
    """Maps to 'notifications'."""

    __tablename__ = "notifications"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    subtype: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    notification_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON().with_variant(JSONB, "postgresql"), default=dict
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
