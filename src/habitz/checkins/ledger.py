"""Check-in ledger: at most one check-in per user, type and calendar day.

Duplicate prevention is a single conditional write against the
``(user_id, type, checkin_date)`` unique key, and activity points are
bumped with an atomic upsert, so concurrent check-ins never race.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.dates import local_date, utc_now
from habitz.db.models import (
    CHECKIN_TYPES,
    ActivityType,
    ActivityTypePoints,
    Profile,
    UserCheckIn,
)
from habitz.db.upsert import insert_for
from habitz.errors import DuplicateCheckInError, NotFoundError, ValidationError
from habitz.gamification.achievement_service import check_activity_achievements
from habitz.gamification.streak_service import apply_completed_day
from habitz.resilience import bounded_store_call

logger = logging.getLogger(__name__)

ACTIVITY = "activity"
NUTRITION = "nutrition"


async def ensure_profile(db: AsyncSession, user_id: str) -> None:
    """Insert a bare profile row for ``user_id`` if none exists."""
    stmt = insert_for(db, Profile).values(id=user_id).on_conflict_do_nothing(index_elements=["id"])
    await db.execute(stmt)


def validate_check_in(checkin_type: str, activity_type_id: int | None) -> None:
    if checkin_type not in CHECKIN_TYPES:
        msg = f"Invalid check-in type: {checkin_type}. Must be one of {CHECKIN_TYPES}"
        raise ValidationError(msg)
    if checkin_type == ACTIVITY and activity_type_id is None:
        raise ValidationError("Activity check-ins require an activity type")
    if checkin_type == NUTRITION and activity_type_id is not None:
        raise ValidationError("Nutrition check-ins do not take an activity type")


@bounded_store_call("record_check_in")
async def _write_check_in(
    db: AsyncSession,
    user_id: str,
    checkin_type: str,
    activity_type_id: int | None,
    image_url: str | None,
    now: datetime,
) -> UserCheckIn:
    today = local_date(now)

    stmt = (
        insert_for(db, UserCheckIn)
        .values(
            user_id=user_id,
            type=checkin_type,
            activity_type_id=activity_type_id,
            image_url=image_url,
            checkin_date=today,
            created_at=now,
        )
        .on_conflict_do_nothing(index_elements=["user_id", "type", "checkin_date"])
        .returning(UserCheckIn.id)
    )
    try:
        await ensure_profile(db, user_id)
        if activity_type_id is not None and await db.get(ActivityType, activity_type_id) is None:
            raise NotFoundError(f"Activity type {activity_type_id} not found")

        checkin_id = (await db.execute(stmt)).scalar_one_or_none()
        if checkin_id is None:
            raise DuplicateCheckInError(user_id, checkin_type)

        if checkin_type == ACTIVITY:
            points_stmt = insert_for(db, ActivityTypePoints).values(
                user_id=user_id,
                activity_type_id=activity_type_id,
                points=1,
                updated_at=now,
            )
            points_stmt = points_stmt.on_conflict_do_update(
                index_elements=["user_id", "activity_type_id"],
                set_={
                    "points": ActivityTypePoints.points + 1,
                    "updated_at": now,
                },
            )
            await db.execute(points_stmt)

        await db.execute(
            update(Profile).where(Profile.id == user_id).values(last_activity_date=today)
        )

        types_today = await db.execute(
            select(func.count(func.distinct(UserCheckIn.type))).where(
                UserCheckIn.user_id == user_id,
                UserCheckIn.checkin_date == today,
            )
        )
        if types_today.scalar_one() == len(CHECKIN_TYPES):
            await apply_completed_day(db, user_id, today, now)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Check-in %d recorded: user=%s type=%s day=%s", checkin_id, user_id, checkin_type, today)
    result = await db.execute(select(UserCheckIn).where(UserCheckIn.id == checkin_id))
    return result.scalar_one()


async def record_check_in(
    db: AsyncSession,
    user_id: str,
    checkin_type: str,
    activity_type_id: int | None = None,
    image_url: str | None = None,
    *,
    now: datetime | None = None,
    redis: object | None = None,
) -> UserCheckIn:
    """Record a check-in for the current reference-clock day.

    Raises:
        ValidationError: bad type, or activity without an activity type.
        NotFoundError: unknown activity type.
        DuplicateCheckInError: a check-in of this type already exists today.
        ExternalServiceError: the store timed out or is unreachable.

    Achievement re-evaluation runs after the check-in is committed and never
    fails it.
    """
    validate_check_in(checkin_type, activity_type_id)
    if now is None:
        now = utc_now()

    checkin = await _write_check_in(db, user_id, checkin_type, activity_type_id, image_url, now)

    if checkin_type == ACTIVITY and activity_type_id is not None:
        try:
            await check_activity_achievements(db, user_id, activity_type_id, redis=redis)
        except Exception:
            logger.warning(
                "Achievement check failed for user=%s activity_type=%s",
                user_id,
                activity_type_id,
                exc_info=True,
            )
            await db.rollback()
            await db.refresh(checkin)

    return checkin


@bounded_store_call("fetch_check_ins")
async def fetch_check_ins(db: AsyncSession, user_id: str) -> list[UserCheckIn]:
    """All check-ins for a user, newest first."""
    result = await db.execute(
        select(UserCheckIn)
        .where(UserCheckIn.user_id == user_id)
        .order_by(UserCheckIn.created_at.desc(), UserCheckIn.id.desc())
    )
    return list(result.scalars().all())


@bounded_store_call("has_checked_in_today")
async def has_checked_in_today(
    db: AsyncSession, user_id: str, checkin_type: str, today: date | None = None
) -> bool:
    if today is None:
        today = local_date()
    result = await db.execute(
        select(UserCheckIn.id).where(
            UserCheckIn.user_id == user_id,
            UserCheckIn.type == checkin_type,
            UserCheckIn.checkin_date == today,
        )
    )
    return result.first() is not None
