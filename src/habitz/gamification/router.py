"""Gamification API endpoints: achievements, streak and profile stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.checkins.points import total_points
from habitz.db.models import Profile
from habitz.dependencies import get_current_user_id, get_db
from habitz.gamification.achievement_service import list_user_achievements
from habitz.gamification.schemas import (
    AchievementResponse,
    AchievementsResponse,
    ProfileStatsResponse,
    StreakResponse,
)
from habitz.gamification.streak_service import get_streak_status

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.get("/achievements", response_model=AchievementsResponse)
async def get_achievements(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All achievements with the caller's progress."""
    items = await list_user_achievements(db, user_id)
    return AchievementsResponse(
        achievements=[AchievementResponse(**item) for item in items],
        total_unlocked=sum(1 for item in items if item["unlocked"]),
        total_available=len(items),
    )


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return StreakResponse(**await get_streak_status(db, user_id))


@router.get("/me/stats", response_model=ProfileStatsResponse)
async def get_my_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await db.get(Profile, user_id)
    return ProfileStatsResponse(
        user_id=user_id,
        xp=profile.xp if profile else 0,
        streak=profile.streak if profile else 0,
        streak_blocks=profile.streak_blocks if profile else 2,
        total_points=await total_points(db, user_id),
    )
