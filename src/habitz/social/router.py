"""Friends and notification endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.dependencies import get_current_user_id, get_db, get_redis_dep
from habitz.social.friend_service import (
    confirm_friend_request,
    decline_friend_request,
    friend_ranking,
    list_friends,
    list_pending_requests,
    send_friend_request,
)
from habitz.social.notification_service import get_notifications, mark_read
from habitz.social.schemas import (
    FriendItem,
    FriendRankingEntry,
    FriendRankingResponse,
    FriendRequestCreate,
    FriendRequestResponse,
    FriendsResponse,
    MarkReadResponse,
    NotificationItem,
    NotificationListResponse,
    PendingRequestItem,
    PendingRequestsResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Social"])


@router.post("/friends/requests", response_model=FriendRequestResponse, status_code=201)
async def create_friend_request(
    body: FriendRequestCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object | None = Depends(get_redis_dep),
):
    return await send_friend_request(db, user_id, body.receiver_id, redis=redis)


@router.get("/friends/requests", response_model=PendingRequestsResponse)
async def pending_requests(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    items = await list_pending_requests(db, user_id)
    return PendingRequestsResponse(requests=[PendingRequestItem(**i) for i in items])


@router.post("/friends/requests/{request_id}/confirm", response_model=FriendRequestResponse)
async def confirm_request(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await confirm_friend_request(db, request_id, user_id)


@router.post("/friends/requests/{request_id}/decline", response_model=FriendRequestResponse)
async def decline_request(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await decline_friend_request(db, request_id, user_id)


@router.get("/friends", response_model=FriendsResponse)
async def friends(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    items = await list_friends(db, user_id)
    return FriendsResponse(friends=[FriendItem(**i) for i in items])


@router.get("/friends/ranking", response_model=FriendRankingResponse)
async def ranking(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    entries = await friend_ranking(db, user_id)
    return FriendRankingResponse(ranking=[FriendRankingEntry(**e) for e in entries])


@router.get("/notifications", response_model=NotificationListResponse)
async def notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    items, unread = await get_notifications(db, user_id, unread_only=unread_only, limit=limit, offset=offset)
    return NotificationListResponse(
        notifications=[
            NotificationItem(
                id=n.id,
                type=n.type,
                subtype=n.subtype,
                title=n.title,
                description=n.description,
                action_url=n.action_url,
                read=n.read,
                created_at=n.created_at,
            )
            for n in items
        ],
        unread_count=unread,
    )


@router.post("/notifications/read", response_model=MarkReadResponse)
async def read_all(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return MarkReadResponse(updated=await mark_read(db, user_id))


@router.post("/notifications/{notification_id}/read", response_model=MarkReadResponse)
async def read_one(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return MarkReadResponse(updated=await mark_read(db, user_id, notification_id))
