"""Pydantic models for friends and notifications."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FriendRequestCreate(BaseModel):
    receiver_id: str


class FriendRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: str
    receiver_id: str
    status: str
    created_at: datetime


class PendingRequestItem(BaseModel):
    id: int
    sender_id: str
    sender_name: str
    sender_avatar_url: str | None = None
    created_at: datetime


class PendingRequestsResponse(BaseModel):
    requests: list[PendingRequestItem]


class FriendItem(BaseModel):
    user_id: str
    name: str
    avatar_url: str | None = None
    streak: int
    total_points: int


class FriendsResponse(BaseModel):
    friends: list[FriendItem]


class FriendRankingEntry(BaseModel):
    rank: int
    user_id: str
    name: str
    total_points: int
    is_self: bool


class FriendRankingResponse(BaseModel):
    ranking: list[FriendRankingEntry]


class NotificationItem(BaseModel):
    id: int
    type: str
    subtype: str
    title: str
    description: str | None = None
    action_url: str | None = None
    read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationItem]
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: int
