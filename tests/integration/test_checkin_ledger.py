"""Integration tests for the check-in ledger: duplicates, points, weekly matrix, streaks."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from habitz import resilience
from habitz.checkins import ledger, weekly
from habitz.checkins.ledger import fetch_check_ins, has_checked_in_today, record_check_in
from habitz.checkins.points import points_summary, total_points
from habitz.checkins.weekly import compute_weekly_activity
from habitz.config import Settings
from habitz.db.models import ActivityTypePoints, Profile, UserCheckIn
from habitz.errors import DuplicateCheckInError, ExternalServiceError, NotFoundError, ValidationError
from habitz.gamification import streak_service
from habitz.gamification.streak_service import get_streak_status, rollover_streaks

MONDAY = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class TestRecordCheckIn:
    """One check-in per user, type and calendar day."""

    @pytest.mark.asyncio
    async def test_activity_then_nutrition_completes_day(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "activity", activity_types["Running"], now=MONDAY)
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY + timedelta(hours=3))

        week = await compute_weekly_activity(db_session, "alice", date(2024, 3, 4))
        monday = week[1]
        assert monday.day == date(2024, 3, 4)
        assert monday.activity_point is True
        assert monday.nutrition_point is True
        assert monday.completed is True
        assert not any(d.completed for d in week if d.day != date(2024, 3, 4))

    @pytest.mark.asyncio
    async def test_second_activity_same_day_is_duplicate(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "activity", activity_types["Running"], now=MONDAY)

        with pytest.raises(DuplicateCheckInError) as exc_info:
            await record_check_in(
                db_session, "alice", "activity", activity_types["Gym"], now=MONDAY + timedelta(hours=5)
            )
        assert exc_info.value.user_message == "You have already checked in today."

        count = await db_session.execute(select(func.count(UserCheckIn.id)))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_next_day_is_allowed(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "activity", activity_types["Running"], now=MONDAY)
        await record_check_in(
            db_session, "alice", "activity", activity_types["Running"], now=MONDAY + timedelta(days=1)
        )
        assert await total_points(db_session, "alice") == 2

    @pytest.mark.asyncio
    async def test_duplicate_is_per_user(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY)
        await record_check_in(db_session, "bob", "nutrition", now=MONDAY)
        assert await total_points(db_session, "alice") == 1
        assert await total_points(db_session, "bob") == 1

    @pytest.mark.asyncio
    async def test_activity_requires_activity_type(self, db_session):
        with pytest.raises(ValidationError):
            await record_check_in(db_session, "alice", "activity", None, now=MONDAY)

    @pytest.mark.asyncio
    async def test_nutrition_rejects_activity_type(self, db_session, activity_types):
        with pytest.raises(ValidationError):
            await record_check_in(db_session, "alice", "nutrition", activity_types["Running"], now=MONDAY)

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await record_check_in(db_session, "alice", "sleep", now=MONDAY)

    @pytest.mark.asyncio
    async def test_unknown_activity_type(self, db_session):
        with pytest.raises(NotFoundError):
            await record_check_in(db_session, "alice", "activity", 9999, now=MONDAY)
        count = await db_session.execute(select(func.count(UserCheckIn.id)))
        assert count.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_check_in_creates_profile(self, db_session, activity_types):
        await record_check_in(db_session, "newbie", "activity", activity_types["Yoga"], now=MONDAY)
        profile = await db_session.get(Profile, "newbie")
        assert profile is not None
        assert profile.last_activity_date == date(2024, 3, 4)

    @pytest.mark.asyncio
    async def test_image_url_is_stored(self, db_session):
        checkin = await record_check_in(db_session, "alice", "nutrition", image_url="https://img/1.jpg", now=MONDAY)
        assert checkin.image_url == "https://img/1.jpg"
        assert checkin.checkin_date == date(2024, 3, 4)

    @pytest.mark.asyncio
    async def test_concurrent_check_ins_only_one_succeeds(self, session_factory, activity_types):
        running = activity_types["Running"]

        async def attempt():
            async with session_factory() as session:
                try:
                    await record_check_in(session, "racer", "activity", running, now=MONDAY)
                    return "ok"
                except DuplicateCheckInError:
                    return "duplicate"

        outcomes = await asyncio.gather(*(attempt() for _ in range(5)))
        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 4

        async with session_factory() as session:
            points = await session.execute(
                select(ActivityTypePoints.points).where(ActivityTypePoints.user_id == "racer")
            )
            assert points.scalar_one() == 1


    @pytest.mark.asyncio
    async def test_achievement_failure_keeps_check_in(self, db_session, activity_types, monkeypatch):
        async def broken(db, *args, **kwargs):
            await db.execute(select(Profile.id))
            raise OperationalError("SELECT achievements", {}, Exception("connection reset"))

        monkeypatch.setattr(ledger, "check_activity_achievements", broken)

        checkin = await record_check_in(db_session, "alice", "activity", activity_types["Running"], now=MONDAY)
        assert checkin.type == "activity"
        assert checkin.checkin_date == date(2024, 3, 4)

        stored = await db_session.scalar(
            select(func.count()).select_from(UserCheckIn).where(UserCheckIn.user_id == "alice")
        )
        points = await db_session.scalar(
            select(ActivityTypePoints.points).where(ActivityTypePoints.user_id == "alice")
        )
        assert stored == 1
        assert points == 1


class TestPointsAndQueries:
    """Points derived from the ledger."""

    @pytest.mark.asyncio
    async def test_points_summary(self, db_session, activity_types):
        for offset in range(3):
            await record_check_in(
                db_session, "alice", "activity", activity_types["Running"], now=MONDAY + timedelta(days=offset)
            )
        await record_check_in(
            db_session, "alice", "activity", activity_types["Gym"], now=MONDAY + timedelta(days=3)
        )
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY)

        summary = await points_summary(db_session, "alice")
        assert summary["total_points"] == 5
        assert summary["nutrition_count"] == 1
        assert summary["activity_points"][0] == {
            "activity_type_id": activity_types["Running"],
            "activity_name": "Running",
            "points": 3,
        }
        assert summary["activity_points"][1]["points"] == 1

    @pytest.mark.asyncio
    async def test_fetch_check_ins_newest_first(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY)
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY + timedelta(days=1))
        checkins = await fetch_check_ins(db_session, "alice")
        assert [c.checkin_date for c in checkins] == [date(2024, 3, 5), date(2024, 3, 4)]

    @pytest.mark.asyncio
    async def test_has_checked_in_today(self, db_session):
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY)
        assert await has_checked_in_today(db_session, "alice", "nutrition", date(2024, 3, 4)) is True
        assert await has_checked_in_today(db_session, "alice", "activity", date(2024, 3, 4)) is False
        assert await has_checked_in_today(db_session, "alice", "nutrition", date(2024, 3, 5)) is False

    @pytest.mark.asyncio
    async def test_weekly_activity_for_unknown_user_is_empty(self, db_session):
        week = await compute_weekly_activity(db_session, "ghost", date(2024, 3, 4))
        assert len(week) == 7
        assert not any(d.activity_point or d.nutrition_point for d in week)


    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [
            ExternalServiceError("weekly_activity timed out", operation="weekly_activity"),
            OperationalError("SELECT user_checkins", {}, Exception("database is locked")),
        ],
    )
    async def test_weekly_activity_degrades_to_empty_week(self, db_session, activity_types, monkeypatch, failure):
        await record_check_in(db_session, "alice", "activity", activity_types["Running"], now=MONDAY)
        await record_check_in(db_session, "alice", "nutrition", now=MONDAY)

        async def unavailable(*args, **kwargs):
            raise failure

        monkeypatch.setattr(weekly, "_fetch_week", unavailable)

        week = await compute_weekly_activity(db_session, "alice", date(2024, 3, 4))
        assert [d.day for d in week] == [date(2024, 3, 3) + timedelta(days=i) for i in range(7)]
        assert not any(d.activity_point or d.nutrition_point or d.completed for d in week)


class TestStreaks:
    """Completed days drive the streak."""

    async def _complete(self, db, activity_types, day_offset: int) -> None:
        now = MONDAY + timedelta(days=day_offset)
        await record_check_in(db, "alice", "activity", activity_types["Walking"], now=now)
        await record_check_in(db, "alice", "nutrition", now=now)

    @pytest.mark.asyncio
    async def test_partial_day_does_not_count(self, db_session, activity_types):
        await record_check_in(db_session, "alice", "activity", activity_types["Walking"], now=MONDAY)
        profile = await db_session.get(Profile, "alice")
        assert profile.streak == 0

    @pytest.mark.asyncio
    async def test_consecutive_days(self, db_session, activity_types):
        for offset in range(3):
            await self._complete(db_session, activity_types, offset)
        profile = await db_session.get(Profile, "alice")
        await db_session.refresh(profile)
        assert profile.streak == 3
        assert profile.streak_blocks == 2

    @pytest.mark.asyncio
    async def test_missed_day_uses_block(self, db_session, activity_types):
        await self._complete(db_session, activity_types, 0)
        await self._complete(db_session, activity_types, 2)
        profile = await db_session.get(Profile, "alice")
        await db_session.refresh(profile)
        assert profile.streak == 2
        assert profile.streak_blocks == 1
        assert profile.last_block_reset is not None

    @pytest.mark.asyncio
    async def test_rollover_charges_and_resets(self, db_session, activity_types):
        await self._complete(db_session, activity_types, 0)

        changed = await rollover_streaks(db_session, now=MONDAY + timedelta(days=2))
        assert changed == 1
        profile = await db_session.get(Profile, "alice")
        await db_session.refresh(profile)
        assert profile.streak == 1
        assert profile.streak_blocks == 1

        await rollover_streaks(db_session, now=MONDAY + timedelta(days=4))
        await db_session.refresh(profile)
        assert profile.streak == 0
        assert profile.streak_blocks == 0

    @pytest.mark.asyncio
    async def test_rollover_is_idempotent(self, db_session, activity_types):
        await self._complete(db_session, activity_types, 0)
        assert await rollover_streaks(db_session, now=MONDAY + timedelta(days=2)) == 1
        assert await rollover_streaks(db_session, now=MONDAY + timedelta(days=2, hours=5)) == 0

    @pytest.mark.asyncio
    async def test_blocks_recover_after_a_week(self, db_session, activity_types):
        await self._complete(db_session, activity_types, 0)
        await self._complete(db_session, activity_types, 2)

        status = await get_streak_status(db_session, "alice", now=MONDAY + timedelta(days=2, hours=1))
        assert status["streak_blocks"] == 1
        assert status["days_until_block_recovery"] == 7

        for offset in range(3, 10):
            await self._complete(db_session, activity_types, offset)
        profile = await db_session.get(Profile, "alice")
        await db_session.refresh(profile)
        assert profile.streak == 9
        assert profile.streak_blocks == 2
        assert profile.last_block_reset is None

    @pytest.mark.asyncio
    async def test_streak_status_for_new_user(self, db_session):
        status = await get_streak_status(db_session, "ghost", now=MONDAY)
        assert status == {
            "streak": 0,
            "streak_blocks": 2,
            "last_activity_date": None,
            "is_active": False,
            "days_until_block_recovery": 0,
        }

    @pytest.mark.asyncio
    async def test_streak_status_projects_unseen_misses(self, db_session, activity_types):
        await self._complete(db_session, activity_types, 0)
        status = await get_streak_status(db_session, "alice", now=MONDAY + timedelta(days=5))
        assert status["streak"] == 0
        assert status["is_active"] is False

    @pytest.mark.asyncio
    async def test_slow_profile_does_not_stop_rollover(self, db_session, activity_types, monkeypatch):
        await self._complete(db_session, activity_types, 0)
        await record_check_in(db_session, "bob", "activity", activity_types["Walking"], now=MONDAY)
        await record_check_in(db_session, "bob", "nutrition", now=MONDAY)

        lock_profile = streak_service._lock_profile

        async def stalls_for_bob(db, user_id):
            if user_id == "bob":
                await asyncio.sleep(5)
            return await lock_profile(db, user_id)

        monkeypatch.setattr(streak_service, "_lock_profile", stalls_for_bob)
        monkeypatch.setattr(resilience, "get_settings", lambda: Settings(store_timeout_seconds=0.2))

        # Each profile gets its own time budget: Bob times out, Alice is still charged.
        assert await rollover_streaks(db_session, now=MONDAY + timedelta(days=2)) == 1

        alice = await db_session.get(Profile, "alice")
        bob = await db_session.get(Profile, "bob")
        await db_session.refresh(alice)
        await db_session.refresh(bob)
        assert (alice.streak, alice.streak_blocks) == (1, 1)
        assert (bob.streak, bob.streak_blocks) == (1, 2)
