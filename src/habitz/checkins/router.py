"""Check-in, weekly activity and points endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.checkins.ledger import fetch_check_ins, has_checked_in_today, record_check_in
from habitz.checkins.points import points_summary
from habitz.checkins.schemas import (
    ActivityTypeResponse,
    CheckedInTodayResponse,
    CheckInCreate,
    CheckInListResponse,
    CheckInResponse,
    DayActivityResponse,
    PointsSummaryResponse,
    WeeklyActivityResponse,
)
from habitz.checkins.weekly import compute_weekly_activity
from habitz.dates import local_date
from habitz.db.models import ActivityType
from habitz.dependencies import get_current_user_id, get_db, get_redis_dep

router = APIRouter(prefix="/api/v1", tags=["Check-ins"])


@router.get("/activity-types", response_model=list[ActivityTypeResponse])
async def list_activity_types(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ActivityType).order_by(ActivityType.name))
    return result.scalars().all()


@router.post("/checkins", response_model=CheckInResponse, status_code=201)
async def create_check_in(
    body: CheckInCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object | None = Depends(get_redis_dep),
):
    """Record today's check-in. 409 if one of this type already exists today."""
    return await record_check_in(
        db, user_id, body.type, body.activity_type_id, body.image_url, redis=redis
    )


@router.get("/checkins", response_model=CheckInListResponse)
async def list_check_ins(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    checkins = await fetch_check_ins(db, user_id)
    return CheckInListResponse(
        checkins=[CheckInResponse.model_validate(c) for c in checkins],
        total=len(checkins),
    )


@router.get("/checkins/today", response_model=CheckedInTodayResponse)
async def checked_in_today(
    type: str = Query("activity", pattern="^(activity|nutrition)$"),  # noqa: A002
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return CheckedInTodayResponse(type=type, checked_in=await has_checked_in_today(db, user_id, type))


@router.get("/activity/weekly", response_model=WeeklyActivityResponse)
async def weekly_activity(
    reference_date: date | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Sun..Sat matrix for the week containing ``reference_date`` (default: today)."""
    days = await compute_weekly_activity(db, user_id, reference_date or local_date())
    return WeeklyActivityResponse(
        week_start=days[0].day,
        days=[
            DayActivityResponse(
                day=d.day,
                name=d.name,
                activity_point=d.activity_point,
                nutrition_point=d.nutrition_point,
                completed=d.completed,
            )
            for d in days
        ],
    )


@router.get("/points", response_model=PointsSummaryResponse)
async def get_points(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await points_summary(db, user_id)
