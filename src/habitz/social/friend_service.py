"""Friend requests, friendships and the friend ranking."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.checkins.ledger import ensure_profile
from habitz.checkins.points import total_points_for
from habitz.config import get_settings
from habitz.db.models import FriendRequest, Friendship, Profile
from habitz.db.upsert import insert_for
from habitz.email.service import send_template_safely
from habitz.errors import ConflictError, NotFoundError, ValidationError
from habitz.resilience import bounded_store_call
from habitz.social.notification_service import notify

logger = logging.getLogger(__name__)


def display_name(profile: Profile | None, fallback: str = "A friend") -> str:
    if profile is None:
        return fallback
    return profile.full_name or profile.username or fallback


async def are_friends(db: AsyncSession, user_id: str, other_id: str) -> bool:
    result = await db.execute(
        select(Friendship.id).where(Friendship.user_id == user_id, Friendship.friend_id == other_id)
    )
    return result.first() is not None


@bounded_store_call("send_friend_request")
async def _insert_request(db: AsyncSession, sender_id: str, receiver_id: str) -> FriendRequest:
    try:
        await ensure_profile(db, sender_id)
        if await db.get(Profile, receiver_id) is None:
            raise NotFoundError(f"User {receiver_id} not found")
        if await are_friends(db, sender_id, receiver_id):
            raise ConflictError(f"{sender_id} and {receiver_id} are already friends")

        pending = await db.execute(
            select(FriendRequest.id).where(
                FriendRequest.status == "pending",
                or_(
                    (FriendRequest.sender_id == sender_id) & (FriendRequest.receiver_id == receiver_id),
                    (FriendRequest.sender_id == receiver_id) & (FriendRequest.receiver_id == sender_id),
                ),
            )
        )
        if pending.first() is not None:
            raise ConflictError(f"A friend request between {sender_id} and {receiver_id} is already pending")

        # A declined request may be re-sent: reset it to pending.
        stmt = insert_for(db, FriendRequest).values(
            sender_id=sender_id, receiver_id=receiver_id, status="pending"
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["sender_id", "receiver_id"],
            set_={"status": "pending", "created_at": stmt.excluded.created_at},
        ).returning(FriendRequest.id)
        request_id = (await db.execute(stmt)).scalar_one()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result = await db.execute(
        select(FriendRequest).where(FriendRequest.id == request_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def send_friend_request(
    db: AsyncSession,
    sender_id: str,
    receiver_id: str,
    redis: object | None = None,
) -> FriendRequest:
    """Send a friend request. The receiver gets a notification and an email."""
    if sender_id == receiver_id:
        raise ValidationError("You cannot send a friend request to yourself")

    request = await _insert_request(db, sender_id, receiver_id)
    request_id = request.id
    logger.info("Friend request %d: %s -> %s", request_id, sender_id, receiver_id)

    try:
        sender = await db.get(Profile, sender_id)
        receiver = await db.get(Profile, receiver_id)
        sender_name = display_name(sender)
        receiver_email = receiver.email if receiver else None
    except Exception:
        logger.warning("Profile lookup for friend request %d failed", request_id, exc_info=True)
        await db.rollback()
        sender_name, receiver_email = display_name(None), None

    confirm_url = f"{get_settings().frontend_base_url}/confirm-friend?requestId={request_id}"
    await send_template_safely(
        receiver_email,
        "friend_request",
        {"sender_name": sender_name, "confirm_url": confirm_url},
    )
    await notify(
        db,
        receiver_id,
        "social",
        "friend_request",
        "New friend request",
        description=f"{sender_name} wants to be your friend",
        action_url=f"/confirm-friend?requestId={request_id}",
        metadata={"request_id": request_id, "sender_id": sender_id},
        redis=redis,
    )
    await db.refresh(request)
    return request


async def _respond(db: AsyncSession, request_id: int, user_id: str, target: str) -> FriendRequest:
    request = await db.get(FriendRequest, request_id)
    if request is None or request.receiver_id != user_id:
        raise NotFoundError(f"Friend request {request_id} not found")

    try:
        result = await db.execute(
            update(FriendRequest)
            .where(FriendRequest.id == request_id, FriendRequest.status == "pending")
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(f"Friend request {request_id} was already answered")

        if target == "accepted":
            for a, b in ((request.sender_id, request.receiver_id), (request.receiver_id, request.sender_id)):
                stmt = insert_for(db, Friendship).values(user_id=a, friend_id=b)
                await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "friend_id"]))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(request)
    return request


@bounded_store_call("confirm_friend_request")
async def confirm_friend_request(db: AsyncSession, request_id: int, user_id: str) -> FriendRequest:
    """Accept a pending request addressed to ``user_id``; creates the friendship both ways."""
    request = await _respond(db, request_id, user_id, "accepted")
    logger.info("Friend request %d accepted", request_id)
    return request


@bounded_store_call("decline_friend_request")
async def decline_friend_request(db: AsyncSession, request_id: int, user_id: str) -> FriendRequest:
    return await _respond(db, request_id, user_id, "declined")


@bounded_store_call("list_friend_requests")
async def list_pending_requests(db: AsyncSession, user_id: str) -> list[dict]:
    """Incoming pending requests, newest first."""
    result = await db.execute(
        select(FriendRequest, Profile)
        .join(Profile, Profile.id == FriendRequest.sender_id)
        .where(FriendRequest.receiver_id == user_id, FriendRequest.status == "pending")
        .order_by(FriendRequest.created_at.desc(), FriendRequest.id.desc())
    )
    return [
        {
            "id": request.id,
            "sender_id": request.sender_id,
            "sender_name": display_name(sender, request.sender_id),
            "sender_avatar_url": sender.avatar_url,
            "created_at": request.created_at,
        }
        for request, sender in result
    ]


async def _friend_ids(db: AsyncSession, user_id: str) -> list[str]:
    result = await db.execute(select(Friendship.friend_id).where(Friendship.user_id == user_id))
    return list(result.scalars().all())


@bounded_store_call("list_friends")
async def list_friends(db: AsyncSession, user_id: str) -> list[dict]:
    """Friends with their total points, alphabetical by display name."""
    friend_ids = await _friend_ids(db, user_id)
    if not friend_ids:
        return []
    profiles = (await db.execute(select(Profile).where(Profile.id.in_(friend_ids)))).scalars().all()
    totals = await total_points_for(db, friend_ids)
    friends = [
        {
            "user_id": profile.id,
            "name": display_name(profile, profile.id),
            "avatar_url": profile.avatar_url,
            "streak": profile.streak,
            "total_points": totals[profile.id],
        }
        for profile in profiles
    ]
    return sorted(friends, key=lambda f: (f["name"].lower(), f["user_id"]))


def rank_by_points(totals: dict[str, int]) -> list[dict]:
    """Rank users by total points DESC, then user_id ASC."""
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"rank": position, "user_id": user_id, "total_points": points}
        for position, (user_id, points) in enumerate(ordered, start=1)
    ]


@bounded_store_call("friend_ranking")
async def friend_ranking(db: AsyncSession, user_id: str) -> list[dict]:
    """The user and their friends ranked by total points."""
    members = [user_id, *await _friend_ids(db, user_id)]
    ranking = rank_by_points(await total_points_for(db, members))
    profiles = (await db.execute(select(Profile).where(Profile.id.in_(members)))).scalars().all()
    by_id = {profile.id: profile for profile in profiles}
    for entry in ranking:
        entry["name"] = display_name(by_id.get(entry["user_id"]), entry["user_id"])
        entry["is_self"] = entry["user_id"] == user_id
    return ranking
