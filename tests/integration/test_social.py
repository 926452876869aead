"""Integration tests for friend requests, friend ranking and notifications."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from habitz.checkins.ledger import ensure_profile, record_check_in
from habitz.db.models import FriendRequest, Notification
from habitz.errors import ConflictError, NotFoundError, ValidationError
from habitz.social.friend_service import (
    are_friends,
    confirm_friend_request,
    decline_friend_request,
    friend_ranking,
    list_friends,
    list_pending_requests,
    send_friend_request,
)
from habitz.social.notification_service import (
    create_notification,
    get_notifications,
    mark_read,
    notify,
)

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def people(db_session):
    for user_id in ("alice", "bob", "carol"):
        await ensure_profile(db_session, user_id)
    await db_session.commit()
    return db_session


class TestFriendRequests:
    """Requests, confirmation and the friendship pair."""

    @pytest.mark.asyncio
    async def test_send_creates_pending_request_and_notifies(self, people):
        request = await send_friend_request(people, "alice", "bob")
        assert request.status == "pending"
        assert request.sender_id == "alice"

        result = await people.execute(
            select(Notification).where(Notification.user_id == "bob", Notification.subtype == "friend_request")
        )
        notification = result.scalar_one()
        assert notification.type == "social"
        assert notification.action_url == f"/confirm-friend?requestId={request.id}"

        pending = await list_pending_requests(people, "bob")
        assert [p["sender_id"] for p in pending] == ["alice"]

    @pytest.mark.asyncio
    async def test_cannot_befriend_self(self, people):
        with pytest.raises(ValidationError):
            await send_friend_request(people, "alice", "alice")

    @pytest.mark.asyncio
    async def test_unknown_receiver(self, people):
        with pytest.raises(NotFoundError):
            await send_friend_request(people, "alice", "nobody")

    @pytest.mark.asyncio
    async def test_pending_in_either_direction_conflicts(self, people):
        await send_friend_request(people, "alice", "bob")
        with pytest.raises(ConflictError):
            await send_friend_request(people, "alice", "bob")
        with pytest.raises(ConflictError):
            await send_friend_request(people, "bob", "alice")

    @pytest.mark.asyncio
    async def test_confirm_creates_friendship_both_ways(self, people):
        request = await send_friend_request(people, "alice", "bob")
        confirmed = await confirm_friend_request(people, request.id, "bob")
        assert confirmed.status == "accepted"
        assert await are_friends(people, "alice", "bob") is True
        assert await are_friends(people, "bob", "alice") is True

        with pytest.raises(ConflictError):
            await send_friend_request(people, "bob", "alice")

    @pytest.mark.asyncio
    async def test_only_receiver_can_confirm(self, people):
        request = await send_friend_request(people, "alice", "bob")
        with pytest.raises(NotFoundError):
            await confirm_friend_request(people, request.id, "alice")
        with pytest.raises(NotFoundError):
            await confirm_friend_request(people, request.id, "carol")

    @pytest.mark.asyncio
    async def test_confirm_twice_conflicts(self, people):
        request = await send_friend_request(people, "alice", "bob")
        await confirm_friend_request(people, request.id, "bob")
        with pytest.raises(ConflictError):
            await confirm_friend_request(people, request.id, "bob")

    @pytest.mark.asyncio
    async def test_declined_request_can_be_resent(self, people):
        request = await send_friend_request(people, "alice", "bob")
        declined = await decline_friend_request(people, request.id, "bob")
        assert declined.status == "declined"
        assert await are_friends(people, "alice", "bob") is False

        again = await send_friend_request(people, "alice", "bob")
        assert again.id == request.id
        assert again.status == "pending"

        rows = await people.execute(select(FriendRequest))
        assert len(rows.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_unknown_request(self, people):
        with pytest.raises(NotFoundError):
            await confirm_friend_request(people, 999, "bob")


class TestFriendRanking:
    """Total points across the user and their friends."""

    @pytest.mark.asyncio
    async def test_ranking_includes_self(self, people, activity_types):
        for friend in ("bob", "carol"):
            request = await send_friend_request(people, "alice", friend)
            await confirm_friend_request(people, request.id, friend)

        running = activity_types["Running"]
        for offset in range(3):
            await record_check_in(people, "bob", "activity", running, now=NOW + timedelta(days=offset))
        await record_check_in(people, "alice", "nutrition", now=NOW)

        ranking = await friend_ranking(people, "alice")
        assert [(r["rank"], r["user_id"], r["total_points"]) for r in ranking] == [
            (1, "bob", 3),
            (2, "alice", 1),
            (3, "carol", 0),
        ]
        assert [r["is_self"] for r in ranking] == [False, True, False]

        friends = await list_friends(people, "alice")
        assert {f["user_id"]: f["total_points"] for f in friends} == {"bob": 3, "carol": 0}

    @pytest.mark.asyncio
    async def test_no_friends(self, people):
        assert await list_friends(people, "alice") == []
        ranking = await friend_ranking(people, "alice")
        assert [r["user_id"] for r in ranking] == ["alice"]


class TestNotifications:
    """Persistence, unread counts and read marking."""

    @pytest.mark.asyncio
    async def test_invalid_type(self, people):
        with pytest.raises(ValueError):
            await create_notification(people, "alice", "spam", "x", "Nope")

    @pytest.mark.asyncio
    async def test_notify_swallows_failures(self, people):
        assert await notify(people, "alice", "spam", "x", "Nope") is False
        assert await notify(people, "alice", "system", "welcome", "Welcome") is True

    @pytest.mark.asyncio
    async def test_unread_and_mark_read(self, people):
        for i in range(3):
            await notify(people, "alice", "system", "tip", f"Tip {i}")

        items, unread = await get_notifications(people, "alice")
        assert unread == 3
        assert len(items) == 3

        assert await mark_read(people, "alice", items[0].id) == 1
        assert await mark_read(people, "alice", items[0].id) == 0
        _, unread = await get_notifications(people, "alice")
        assert unread == 2

        unread_items, _ = await get_notifications(people, "alice", unread_only=True)
        assert len(unread_items) == 2

        assert await mark_read(people, "alice") == 2
        _, unread = await get_notifications(people, "alice")
        assert unread == 0

    @pytest.mark.asyncio
    async def test_mark_read_is_scoped_to_owner(self, people):
        await notify(people, "alice", "system", "tip", "Tip")
        items, _ = await get_notifications(people, "alice")
        assert await mark_read(people, "bob", items[0].id) == 0

    @pytest.mark.asyncio
    async def test_push_to_redis_when_configured(self, people):
        class FakeRedis:
            def __init__(self):
                self.published = []

            async def publish(self, channel, message):
                self.published.append((channel, message))

        redis = FakeRedis()
        await notify(people, "alice", "system", "tip", "Tip", redis=redis)
        assert redis.published[0][0] == "notify:user:alice"
