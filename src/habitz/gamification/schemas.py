"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class AchievementResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str
    icon: str | None = None
    category: str
    tier: str
    is_generic: bool
    required_points: int
    xp_points: int
    activity_type_ids: list[int] = []
    current_points: int
    progress: float
    unlocked: bool
    unlocked_at: datetime | None = None


class AchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]
    total_unlocked: int
    total_available: int


class StreakResponse(BaseModel):
    streak: int
    streak_blocks: int
    last_activity_date: date | None = None
    is_active: bool
    days_until_block_recovery: int


class ProfileStatsResponse(BaseModel):
    user_id: str
    xp: int
    streak: int
    streak_blocks: int
    total_points: int
