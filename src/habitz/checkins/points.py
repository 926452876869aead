"""Point reads derived from the ledger."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.db.models import ActivityType, ActivityTypePoints, UserCheckIn
from habitz.resilience import bounded_store_call


async def activity_points_by_type(db: AsyncSession, user_id: str) -> dict[int, int]:
    result = await db.execute(
        select(ActivityTypePoints.activity_type_id, ActivityTypePoints.points).where(
            ActivityTypePoints.user_id == user_id
        )
    )
    return {row.activity_type_id: row.points for row in result}


async def total_points(db: AsyncSession, user_id: str) -> int:
    """Total points = number of check-ins of either type."""
    result = await db.execute(
        select(func.count(UserCheckIn.id)).where(UserCheckIn.user_id == user_id)
    )
    return result.scalar_one()


async def total_points_for(db: AsyncSession, user_ids: list[str]) -> dict[str, int]:
    """Total points for several users at once. Users without check-ins get 0."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(UserCheckIn.user_id, func.count(UserCheckIn.id))
        .where(UserCheckIn.user_id.in_(user_ids))
        .group_by(UserCheckIn.user_id)
    )
    totals = dict.fromkeys(user_ids, 0)
    totals.update({user_id: count for user_id, count in result})
    return totals


async def nutrition_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(UserCheckIn.id)).where(
            UserCheckIn.user_id == user_id,
            UserCheckIn.type == "nutrition",
        )
    )
    return result.scalar_one()


async def _activity_point_rows(db: AsyncSession, user_id: str) -> list[dict]:
    result = await db.execute(
        select(ActivityTypePoints, ActivityType.name)
        .join(ActivityType, ActivityType.id == ActivityTypePoints.activity_type_id)
        .where(ActivityTypePoints.user_id == user_id)
        .order_by(ActivityTypePoints.points.desc(), ActivityType.name)
    )
    return [
        {
            "activity_type_id": row.ActivityTypePoints.activity_type_id,
            "activity_name": row.name,
            "points": row.ActivityTypePoints.points,
        }
        for row in result
    ]


@bounded_store_call("fetch_activity_type_points")
async def fetch_activity_type_points(db: AsyncSession, user_id: str) -> list[dict]:
    """Per-activity-type points for a user, with activity names."""
    return await _activity_point_rows(db, user_id)


@bounded_store_call("points_summary")
async def points_summary(db: AsyncSession, user_id: str) -> dict:
    return {
        "total_points": await total_points(db, user_id),
        "nutrition_count": await nutrition_count(db, user_id),
        "activity_points": await _activity_point_rows(db, user_id),
    }
