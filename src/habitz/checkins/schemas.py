"""Pydantic models for check-in endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CheckInCreate(BaseModel):
    type: Literal["activity", "nutrition"]
    activity_type_id: int | None = None
    image_url: str | None = Field(default=None, max_length=2048)


class CheckInResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    activity_type_id: int | None
    image_url: str | None
    checkin_date: date
    created_at: datetime


class CheckInListResponse(BaseModel):
    checkins: list[CheckInResponse]
    total: int


class CheckedInTodayResponse(BaseModel):
    type: str
    checked_in: bool


class DayActivityResponse(BaseModel):
    day: date
    name: str
    activity_point: bool
    nutrition_point: bool
    completed: bool


class WeeklyActivityResponse(BaseModel):
    week_start: date
    days: list[DayActivityResponse]


class ActivityPointsEntry(BaseModel):
    activity_type_id: int
    activity_name: str
    points: int


class PointsSummaryResponse(BaseModel):
    total_points: int
    nutrition_count: int
    activity_points: list[ActivityPointsEntry]


class ActivityTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str | None
    is_habit_forming: bool
