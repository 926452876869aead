"""Pydantic models for challenge endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=128)
    description: str | None = None
    activity_type_id: int | None = None
    start_date: date
    end_date: date
    has_bet: bool = False
    bet_amount: Decimal | None = None
    invitee_ids: list[str] = []


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    title: str
    description: str | None
    activity_type_id: int | None
    start_date: date
    end_date: date
    has_bet: bool
    bet_amount: Decimal | None


class ChallengeListItem(BaseModel):
    id: int
    title: str
    description: str | None = None
    creator_id: str
    is_creator: bool
    activity_type_id: int | None = None
    activity_name: str | None = None
    start_date: date
    end_date: date
    has_bet: bool
    bet_amount: Decimal | None = None
    participant_count: int
    status: str
    state: str
    progress: int


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeListItem]


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    challenge_id: int
    user_id: str
    status: str
    joined_at: datetime
    responded_at: datetime | None = None


class RankingEntry(BaseModel):
    rank: int
    user_id: str
    username: str | None = None
    avatar_url: str | None = None
    points: int


class RankingResponse(BaseModel):
    challenge_id: int
    ranking: list[RankingEntry]


class SummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    challenge_id: int
    winner_user_id: str | None
    total_participants: int
    winner_points: int
    total_bet_pool: Decimal | None
    completion_type: str
    created_at: datetime


class SettlementView(BaseModel):
    challenge_id: int
    winner_user_id: str | None
    winner_points: int
    total_participants: int
    total_bet_pool: Decimal | None = None
    completion_type: str
    is_winner: bool
    user_points: int
    net_amount: Decimal | None = None
