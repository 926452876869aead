"""Streak tracking: daily completions, grace blocks and block recovery.

A day counts toward the streak once both an activity and a nutrition
check-in exist for it. Missed days are charged against ``streak_blocks``;
with no blocks left the streak resets to 0. Blocks come back
``block_recovery_days`` after the first block of a cycle was spent.

The transitions are pure functions over ``StreakState``. The database
functions below load a profile under a row lock, apply them and write the
result back.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.config import get_settings
from habitz.dates import as_aware, local_date, start_of_day, utc_now
from habitz.db.models import Profile
from habitz.errors import NotFoundError
from habitz.resilience import bounded_store_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakState:
    streak: int = 0
    streak_blocks: int = 2
    # Last calendar day already accounted for, completed or charged as missed.
    last_streak_update: date | None = None
    last_block_reset: datetime | None = None


# --- Predicates ---


def is_streak_active(
    last_activity_date: date | datetime | None,
    now: datetime,
    grace_days: int | None = None,
) -> bool:
    """True iff at most ``grace_days`` (default 2) days passed since the last activity."""
    if last_activity_date is None:
        return False
    if grace_days is None:
        grace_days = get_settings().streak_grace_days
    if isinstance(last_activity_date, datetime):
        last_activity_date = local_date(last_activity_date)
    return (local_date(now) - last_activity_date).days <= grace_days


def days_until_block_recovery(
    last_block_reset: datetime | None,
    now: datetime,
    recovery_days: int | None = None,
) -> int:
    """Whole days (rounded up) until spent blocks come back. 0 when nothing is pending."""
    if last_block_reset is None:
        return 0
    if recovery_days is None:
        recovery_days = get_settings().block_recovery_days
    remaining = as_aware(last_block_reset) + timedelta(days=recovery_days) - as_aware(now)
    return max(0, math.ceil(remaining.total_seconds() / 86400))


# --- Transitions ---


def recover_blocks(
    state: StreakState,
    now: datetime,
    default_blocks: int | None = None,
    recovery_days: int | None = None,
) -> StreakState:
    """Restore the default block count once the recovery window has elapsed."""
    if state.last_block_reset is None:
        return state
    if days_until_block_recovery(state.last_block_reset, now, recovery_days) > 0:
        return state
    if default_blocks is None:
        default_blocks = get_settings().default_streak_blocks
    return replace(state, streak_blocks=max(state.streak_blocks, default_blocks), last_block_reset=None)


def charge_missed_days(state: StreakState, through: date) -> StreakState:
    """Charge every unaccounted day up to and including ``through`` as missed."""
    if state.last_streak_update is None:
        return replace(state, last_streak_update=through)
    if through <= state.last_streak_update:
        return state

    streak = state.streak
    blocks = state.streak_blocks
    block_reset = state.last_block_reset
    missed = state.last_streak_update + timedelta(days=1)
    while missed <= through and streak > 0:
        if blocks > 0:
            blocks -= 1
            if block_reset is None:
                # The day is definitively missed at the following midnight.
                block_reset = start_of_day(missed + timedelta(days=1))
        else:
            streak = 0
        missed += timedelta(days=1)

    return replace(
        state,
        streak=streak,
        streak_blocks=blocks,
        last_streak_update=through,
        last_block_reset=block_reset,
    )


def complete_day(state: StreakState, day: date) -> StreakState:
    """Count ``day`` toward the streak. Idempotent for an already-counted day."""
    if state.last_streak_update is not None and day <= state.last_streak_update:
        return state
    state = charge_missed_days(state, day - timedelta(days=1))
    return replace(state, streak=state.streak + 1, last_streak_update=day)


# --- Persistence ---


def load_state(profile: Profile) -> StreakState:
    return StreakState(
        streak=profile.streak,
        streak_blocks=profile.streak_blocks,
        last_streak_update=profile.last_streak_update,
        last_block_reset=profile.last_block_reset,
    )


def store_state(profile: Profile, state: StreakState) -> None:
    profile.streak = state.streak
    profile.streak_blocks = state.streak_blocks
    profile.last_streak_update = state.last_streak_update
    profile.last_block_reset = state.last_block_reset


async def _lock_profile(db: AsyncSession, user_id: str) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.id == user_id).with_for_update())
    return result.scalar_one_or_none()


async def apply_completed_day(db: AsyncSession, user_id: str, day: date, now: datetime) -> StreakState:
    """Count a fully completed day for the user. Caller commits."""
    profile = await _lock_profile(db, user_id)
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found")

    before = load_state(profile)
    after = complete_day(recover_blocks(before, now), day)
    store_state(profile, after)
    await db.flush()
    if after.streak != before.streak:
        logger.info("Streak for %s: %d -> %d", user_id, before.streak, after.streak)
    return after


@bounded_store_call("open_streaks")
async def _open_streak_ids(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(Profile.id).where(
            or_(Profile.streak > 0, Profile.last_block_reset.is_not(None))
        )
    )
    return list(result.scalars().all())


@bounded_store_call("rollover_streak")
async def rollover_profile(db: AsyncSession, user_id: str, now: datetime, through: date) -> bool:
    """Charge one profile's misses through ``through`` and recover its blocks.

    Commits on its own, so every profile is bounded and persisted separately.
    Returns True if the streak state changed.
    """
    try:
        profile = await _lock_profile(db, user_id)
        if profile is None:
            await db.commit()
            return False
        before = load_state(profile)
        after = charge_missed_days(recover_blocks(before, now), through)
        if after != before:
            store_state(profile, after)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return after != before


async def rollover_streaks(db: AsyncSession, now: datetime | None = None) -> int:
    """Daily pass: charge yesterday's misses and recover blocks for every profile.

    A profile that fails is logged and skipped; the rest still roll over.
    Returns the number of profiles whose streak state changed.
    """
    if now is None:
        now = utc_now()
    yesterday = local_date(now) - timedelta(days=1)
    user_ids = await _open_streak_ids(db)

    changed = failed = 0
    for user_id in user_ids:
        try:
            if await rollover_profile(db, user_id, now, yesterday):
                changed += 1
        except Exception:
            failed += 1
            logger.exception("Streak rollover failed for %s", user_id)
            await db.rollback()

    logger.info(
        "Streak rollover through %s: %d of %d profiles changed, %d failed",
        yesterday, changed, len(user_ids), failed,
    )
    return changed


@bounded_store_call("streak_status")
async def get_streak_status(db: AsyncSession, user_id: str, now: datetime | None = None) -> dict:
    """Current streak view, projecting misses the rollover has not charged yet."""
    if now is None:
        now = utc_now()
    profile = await db.get(Profile, user_id)
    if profile is None:
        state = StreakState(streak_blocks=get_settings().default_streak_blocks)
        last_activity = None
    else:
        state = load_state(profile)
        last_activity = profile.last_activity_date

    projected = charge_missed_days(recover_blocks(state, now), local_date(now) - timedelta(days=1))
    return {
        "streak": projected.streak,
        "streak_blocks": projected.streak_blocks,
        "last_activity_date": last_activity,
        "is_active": is_streak_active(last_activity, now),
        "days_until_block_recovery": days_until_block_recovery(projected.last_block_reset, now),
    }
