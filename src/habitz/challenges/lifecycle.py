"""Challenge lifecycle: creation, invitations, progress and completion.

Participant states: pending -> accepted | declined. ``declined`` is
terminal. Accepted challenges are further classified at read time as
``active`` or ``completed``; neither is persisted.

A challenge is completed when its summary exists or when its end date
has passed on the reference clock (the end date itself still counts as
active).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.checkins.ledger import ensure_profile
from habitz.config import get_settings
from habitz.dates import local_date, start_of_day, utc_now
from habitz.db.models import (
    ActivityType,
    Challenge,
    ChallengeParticipant,
    ChallengeSummary,
    Profile,
    UserCheckIn,
)
from habitz.email.service import send_template_safely
from habitz.errors import ConflictError, NotFoundError, ValidationError
from habitz.resilience import bounded_store_call
from habitz.social.notification_service import notify

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["accepted", "declined"],
    "accepted": [],
    "declined": [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a participant status transition. Raises ConflictError if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise ConflictError(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Valid transitions: {valid}"
        )


def validate_challenge(
    start_date: date,
    end_date: date,
    has_bet: bool,
    bet_amount: Decimal | None,
) -> None:
    if start_date > end_date:
        raise ValidationError(f"start_date {start_date} is after end_date {end_date}")
    if has_bet and (bet_amount is None or bet_amount <= 0):
        raise ValidationError("A bet challenge needs a positive bet_amount")
    if not has_bet and bet_amount is not None:
        raise ValidationError("bet_amount is only allowed on bet challenges")


def challenge_progress(start_date: date, end_date: date, now: datetime) -> int:
    """Elapsed share of the challenge window in percent: 0 at start, 100 at end."""
    start = start_of_day(start_date)
    end = start_of_day(end_date)
    if now >= end:
        return 100
    if now <= start:
        return 0
    return round((now - start) / (end - start) * 100)


def is_completed(end_date: date, now: datetime, has_summary: bool = False) -> bool:
    return has_summary or local_date(now) > end_date


def participant_state(status: str, end_date: date, now: datetime, has_summary: bool = False) -> str:
    """Read-time state: pending, declined, active or completed."""
    if status != "accepted":
        return status
    return "completed" if is_completed(end_date, now, has_summary) else "active"


# --- Points during a challenge window ---


def _points_query(challenge: Challenge, user_ids: Iterable[str] | None = None):
    conditions = [
        UserCheckIn.type == "activity",
        UserCheckIn.checkin_date >= challenge.start_date,
        UserCheckIn.checkin_date <= challenge.end_date,
    ]
    if challenge.activity_type_id is not None:
        conditions.append(UserCheckIn.activity_type_id == challenge.activity_type_id)
    if user_ids is not None:
        conditions.append(UserCheckIn.user_id.in_(list(user_ids)))
    return (
        select(UserCheckIn.user_id, func.count(UserCheckIn.id))
        .where(and_(*conditions))
        .group_by(UserCheckIn.user_id)
    )


async def challenge_points(db: AsyncSession, challenge: Challenge, user_ids: list[str]) -> dict[str, int]:
    """Qualifying activity check-ins per user inside the challenge window."""
    if not user_ids:
        return {}
    result = await db.execute(_points_query(challenge, user_ids))
    points = dict.fromkeys(user_ids, 0)
    points.update({user_id: count for user_id, count in result})
    return points


async def accepted_participants(db: AsyncSession, challenge_id: int) -> list[ChallengeParticipant]:
    result = await db.execute(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.status == "accepted",
        )
    )
    return list(result.scalars().all())


async def get_challenge(db: AsyncSession, challenge_id: int) -> Challenge:
    challenge = await db.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFoundError(f"Challenge {challenge_id} not found")
    return challenge


# --- Mutations ---


@bounded_store_call("create_challenge")
async def _insert_challenge(
    db: AsyncSession,
    creator_id: str,
    title: str,
    description: str | None,
    activity_type_id: int | None,
    start_date: date,
    end_date: date,
    has_bet: bool,
    bet_amount: Decimal | None,
    invitees: list[str],
    now: datetime,
) -> Challenge:
    try:
        if activity_type_id is not None and await db.get(ActivityType, activity_type_id) is None:
            raise NotFoundError(f"Activity type {activity_type_id} not found")
        for user_id in [creator_id, *invitees]:
            await ensure_profile(db, user_id)

        challenge = Challenge(
            creator_id=creator_id,
            title=title,
            description=description,
            activity_type_id=activity_type_id,
            start_date=start_date,
            end_date=end_date,
            has_bet=has_bet,
            bet_amount=bet_amount,
            created_at=now,
        )
        db.add(challenge)
        await db.flush()

        db.add(ChallengeParticipant(
            challenge_id=challenge.id, user_id=creator_id, status="accepted", joined_at=now, responded_at=now,
        ))
        for user_id in invitees:
            db.add(ChallengeParticipant(challenge_id=challenge.id, user_id=user_id, status="pending", joined_at=now))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Challenge %d created by %s with %d invitees", challenge.id, creator_id, len(invitees))
    return challenge


async def create_challenge(
    db: AsyncSession,
    creator_id: str,
    title: str,
    start_date: date,
    end_date: date,
    invitee_ids: list[str],
    activity_type_id: int | None = None,
    description: str | None = None,
    has_bet: bool = False,
    bet_amount: Decimal | None = None,
    redis: object | None = None,
    now: datetime | None = None,
) -> Challenge:
    """Create a challenge, enrol the creator as accepted and invite the rest.

    Invitees are notified in-app and by email after the challenge is
    committed; delivery failures are logged and ignored.
    """
    validate_challenge(start_date, end_date, has_bet, bet_amount)
    invitees = list(dict.fromkeys(i for i in invitee_ids if i != creator_id))
    challenge = await _insert_challenge(
        db, creator_id, title, description, activity_type_id,
        start_date, end_date, has_bet, bet_amount, invitees, now or utc_now(),
    )
    # A failed side effect rolls back and expires loaded rows; work from plain values
    challenge_id = challenge.id

    try:
        profiles = await db.execute(select(Profile).where(Profile.id.in_([creator_id, *invitees])))
        contacts = {p.id: (p.full_name or p.username, p.email) for p in profiles.scalars()}
    except Exception:
        logger.warning("Profile lookup for challenge %d invites failed", challenge_id, exc_info=True)
        await db.rollback()
        contacts = {}
    creator_name = contacts.get(creator_id, (None, None))[0]
    challenge_url = f"{get_settings().frontend_base_url}/challenges/{challenge_id}"

    for user_id in invitees:
        await send_template_safely(
            contacts.get(user_id, (None, None))[1],
            "challenge_invite",
            {"creator_name": creator_name or "A friend", "title": title, "challenge_url": challenge_url},
        )
        await notify(
            db,
            user_id,
            "challenge",
            "challenge_invite",
            "New challenge invite",
            description=f"You were invited to '{title}'",
            action_url=f"/challenges/{challenge_id}",
            metadata={"challenge_id": challenge_id, "creator_id": creator_id},
            redis=redis,
        )

    await db.refresh(challenge)
    return challenge


async def _respond(
    db: AsyncSession,
    user_id: str,
    challenge_id: int,
    target: str,
    now: datetime | None = None,
) -> ChallengeParticipant:
    now = now or utc_now()
    values: dict = {"status": target, "responded_at": now}
    conditions = [
        ChallengeParticipant.challenge_id == challenge_id,
        ChallengeParticipant.user_id == user_id,
        ChallengeParticipant.status == "pending",
    ]
    if target == "accepted":
        values["joined_at"] = now
        # Nobody joins a challenge that has ended or been settled
        conditions.append(
            select(Challenge.id)
            .where(Challenge.id == challenge_id, Challenge.end_date >= local_date(now))
            .exists()
        )
        conditions.append(
            ~select(ChallengeSummary.id).where(ChallengeSummary.challenge_id == challenge_id).exists()
        )

    try:
        result = await db.execute(
            update(ChallengeParticipant)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await db.execute(
                select(ChallengeParticipant.status).where(
                    ChallengeParticipant.challenge_id == challenge_id,
                    ChallengeParticipant.user_id == user_id,
                )
            )
            status = current.scalar_one_or_none()
            if status is None:
                raise NotFoundError(f"No invitation for {user_id} on challenge {challenge_id}")
            validate_transition(status, target)
            raise ConflictError(f"Challenge {challenge_id} is already completed")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    participant = await db.execute(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        ).execution_options(populate_existing=True)
    )
    logger.info("User %s %s challenge %d", user_id, target, challenge_id)
    return participant.scalar_one()


@bounded_store_call("accept_invite")
async def accept_invite(
    db: AsyncSession, user_id: str, challenge_id: int, now: datetime | None = None
) -> ChallengeParticipant:
    """pending -> accepted while the challenge is still running.

    NotFoundError without an invitation; ConflictError if already answered
    or the challenge is completed.
    """
    return await _respond(db, user_id, challenge_id, "accepted", now)


@bounded_store_call("decline_invite")
async def decline_invite(
    db: AsyncSession, user_id: str, challenge_id: int, now: datetime | None = None
) -> ChallengeParticipant:
    """pending -> declined (terminal)."""
    return await _respond(db, user_id, challenge_id, "declined", now)


# --- Queries ---


async def _list_for_user(
    db: AsyncSession,
    user_id: str,
    statuses: tuple[str, ...],
    now: datetime,
    want: str,
) -> list[dict]:
    accepted_count = (
        select(func.count(ChallengeParticipant.id))
        .where(
            ChallengeParticipant.challenge_id == Challenge.id,
            ChallengeParticipant.status == "accepted",
        )
        .correlate(Challenge)
        .scalar_subquery()
    )
    result = await db.execute(
        select(Challenge, ChallengeParticipant.status, ChallengeSummary.id, accepted_count)
        .join(ChallengeParticipant, ChallengeParticipant.challenge_id == Challenge.id)
        .outerjoin(ChallengeSummary, ChallengeSummary.challenge_id == Challenge.id)
        .where(
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.status.in_(statuses),
        )
        .order_by(Challenge.end_date.desc(), Challenge.id.desc())
    )

    items = []
    for challenge, status, summary_id, participant_count in result:
        has_summary = summary_id is not None
        completed = is_completed(challenge.end_date, now, has_summary)
        if (want == "completed") != completed:
            continue
        items.append({
            "id": challenge.id,
            "title": challenge.title,
            "description": challenge.description,
            "creator_id": challenge.creator_id,
            "is_creator": challenge.creator_id == user_id,
            "activity_type_id": challenge.activity_type_id,
            "activity_name": challenge.activity_type.name if challenge.activity_type else None,
            "start_date": challenge.start_date,
            "end_date": challenge.end_date,
            "has_bet": challenge.has_bet,
            "bet_amount": challenge.bet_amount,
            "participant_count": participant_count,
            "status": status,
            "state": participant_state(status, challenge.end_date, now, has_summary),
            "progress": challenge_progress(challenge.start_date, challenge.end_date, now),
        })
    return items


@bounded_store_call("list_active_challenges")
async def list_active_challenges(db: AsyncSession, user_id: str, now: datetime | None = None) -> list[dict]:
    return await _list_for_user(db, user_id, ("accepted",), now or utc_now(), "active")


@bounded_store_call("list_challenge_invites")
async def list_challenge_invites(db: AsyncSession, user_id: str, now: datetime | None = None) -> list[dict]:
    """Pending invitations for challenges that have not finished yet."""
    return await _list_for_user(db, user_id, ("pending",), now or utc_now(), "active")


@bounded_store_call("list_completed_challenges")
async def list_completed_challenges(db: AsyncSession, user_id: str, now: datetime | None = None) -> list[dict]:
    return await _list_for_user(db, user_id, ("accepted",), now or utc_now(), "completed")
