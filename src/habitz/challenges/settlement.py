"""Challenge settlement: winner, bet payouts and the one-time summary.

Winner: the accepted participant with the most points in the challenge
window. Ties go to the earliest ``joined_at`` (acceptance time), then the
smallest user_id.

Bets: every loser pays ``bet_amount``; the winner's net gain is
``bet_amount * (participants - 1)``, so all nets sum to zero.

The summary row is unique per challenge and written with a conditional
insert, so concurrent settlements produce exactly one summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.challenges.lifecycle import (
    accepted_participants,
    challenge_points,
    get_challenge,
    is_completed,
)
from habitz.dates import as_aware, local_date, utc_now
from habitz.db.models import Challenge, ChallengeParticipant, ChallengeSummary
from habitz.db.upsert import insert_for
from habitz.errors import ConflictError, NotFoundError, PermissionDeniedError
from habitz.resilience import bounded_store_call
from habitz.social.notification_service import notify

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Standing:
    user_id: str
    points: int
    joined_at: datetime


def pick_winner(standings: list[Standing]) -> Standing | None:
    if not standings:
        return None
    return min(standings, key=lambda s: (-s.points, as_aware(s.joined_at), s.user_id))


def bet_pool(bet_amount: Decimal | None, participant_count: int) -> Decimal | None:
    """The winner's net gain, or None for challenges without a bet."""
    if bet_amount is None:
        return None
    return bet_amount * max(0, participant_count - 1)


def net_outcomes(user_ids: list[str], winner_id: str | None, bet_amount: Decimal | None) -> dict[str, Decimal]:
    """Net bet result per participant. Sums to zero."""
    if bet_amount is None or winner_id is None:
        return {user_id: ZERO for user_id in user_ids}
    pool = bet_pool(bet_amount, len(user_ids)) or ZERO
    return {
        user_id: pool if user_id == winner_id else -bet_amount
        for user_id in user_ids
    }


async def _standings(db: AsyncSession, challenge: Challenge) -> list[Standing]:
    participants = await accepted_participants(db, challenge.id)
    points = await challenge_points(db, challenge, [p.user_id for p in participants])
    return [Standing(p.user_id, points[p.user_id], p.joined_at) for p in participants]


async def _existing_summary(db: AsyncSession, challenge_id: int) -> ChallengeSummary | None:
    result = await db.execute(
        select(ChallengeSummary).where(ChallengeSummary.challenge_id == challenge_id)
    )
    return result.scalar_one_or_none()


async def _settle(
    db: AsyncSession,
    challenge: Challenge,
    now: datetime,
    completion_type: str,
    redis: object | None,
) -> ChallengeSummary:
    existing = await _existing_summary(db, challenge.id)
    if existing is not None:
        return existing
    if not is_completed(challenge.end_date, now):
        raise ConflictError(f"Challenge {challenge.id} runs until {challenge.end_date}")

    standings = await _standings(db, challenge)
    winner = pick_winner(standings)
    bet_amount = challenge.bet_amount if challenge.has_bet else None
    nets = net_outcomes([s.user_id for s in standings], winner.user_id if winner else None, bet_amount)

    try:
        stmt = (
            insert_for(db, ChallengeSummary)
            .values(
                challenge_id=challenge.id,
                winner_user_id=winner.user_id if winner else None,
                total_participants=len(standings),
                winner_points=winner.points if winner else 0,
                total_bet_pool=bet_pool(bet_amount, len(standings)),
                completion_type=completion_type,
                created_at=now,
            )
            .on_conflict_do_nothing(index_elements=["challenge_id"])
            .returning(ChallengeSummary.id)
        )
        inserted = (await db.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            # Freeze each outcome with the summary; later reads never recompute it
            for standing in standings:
                await db.execute(
                    update(ChallengeParticipant)
                    .where(
                        ChallengeParticipant.challenge_id == challenge.id,
                        ChallengeParticipant.user_id == standing.user_id,
                    )
                    .values(
                        final_points=standing.points,
                        net_amount=nets[standing.user_id] if bet_amount is not None else None,
                    )
                    .execution_options(synchronize_session=False)
                )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    summary = await _existing_summary(db, challenge.id)
    if summary is None:
        raise NotFoundError(f"Summary for challenge {challenge.id} vanished")
    if inserted is None:
        logger.info("Challenge %d was settled concurrently", challenge.id)
        return summary

    challenge_id, title = challenge.id, challenge.title
    winner_id = summary.winner_user_id
    logger.info(
        "Challenge %d settled (%s): winner=%s points=%d participants=%d",
        challenge_id, completion_type, winner_id, summary.winner_points, summary.total_participants,
    )
    for standing in standings:
        await notify(
            db,
            standing.user_id,
            "challenge",
            "challenge_result",
            "You won the challenge!" if standing.user_id == winner_id else "Challenge finished",
            description=f"'{title}' is over with {standing.points} points for you",
            action_url=f"/challenges/{challenge_id}/summary",
            metadata={"challenge_id": challenge_id, "winner_user_id": winner_id},
            redis=redis,
        )

    # notify() rolls back on failure, which expires the summary
    await db.refresh(summary)
    return summary


async def _check_can_settle(db: AsyncSession, challenge: Challenge, actor_id: str) -> None:
    if actor_id == challenge.creator_id:
        return
    result = await db.execute(
        select(ChallengeParticipant.id).where(
            ChallengeParticipant.challenge_id == challenge.id,
            ChallengeParticipant.user_id == actor_id,
            ChallengeParticipant.status == "accepted",
        )
    )
    if result.scalar_one_or_none() is None:
        raise PermissionDeniedError(f"{actor_id} cannot settle challenge {challenge.id}")


@bounded_store_call("settle_challenge")
async def settle_challenge(
    db: AsyncSession,
    challenge_id: int,
    now: datetime | None = None,
    completion_type: str = "manual",
    redis: object | None = None,
    actor_id: str | None = None,
) -> ChallengeSummary:
    """Settle a finished challenge once. Re-running returns the stored summary.

    ``actor_id`` is the requesting user for manual settlement; only the
    creator or an accepted participant may settle. The sweep passes None.

    Raises:
        NotFoundError: unknown challenge.
        PermissionDeniedError: the actor is not part of the challenge.
        ConflictError: the challenge has not finished yet.
    """
    challenge = await get_challenge(db, challenge_id)
    if actor_id is not None:
        await _check_can_settle(db, challenge, actor_id)
    return await _settle(db, challenge, now or utc_now(), completion_type, redis)


async def settle_due_challenges(db: AsyncSession, now: datetime | None = None, redis: object | None = None) -> int:
    """Settle every challenge whose end date has passed and has no summary yet."""
    if now is None:
        now = utc_now()
    result = await db.execute(
        select(Challenge.id)
        .outerjoin(ChallengeSummary, ChallengeSummary.challenge_id == Challenge.id)
        .where(ChallengeSummary.id.is_(None), Challenge.end_date < local_date(now))
        .order_by(Challenge.end_date, Challenge.id)
    )
    due = list(result.scalars().all())

    settled = 0
    for challenge_id in due:
        try:
            await settle_challenge(db, challenge_id, now, "automatic", redis)
            settled += 1
        except Exception:
            logger.exception("Failed to settle challenge %d", challenge_id)
    logger.info("Settlement sweep: %d of %d due challenges settled", settled, len(due))
    return settled


@bounded_store_call("challenge_summary")
async def get_challenge_summary(db: AsyncSession, challenge_id: int) -> ChallengeSummary:
    await get_challenge(db, challenge_id)
    summary = await _existing_summary(db, challenge_id)
    if summary is None:
        raise NotFoundError(f"Challenge {challenge_id} has not been settled")
    return summary


@bounded_store_call("user_settlement")
async def get_user_settlement(db: AsyncSession, challenge_id: int, user_id: str) -> dict:
    """One participant's view of a settled challenge, read from the settlement snapshot."""
    await get_challenge(db, challenge_id)
    summary = await _existing_summary(db, challenge_id)
    if summary is None:
        raise NotFoundError(f"Challenge {challenge_id} has not been settled")

    result = await db.execute(
        select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.final_points.is_not(None),
        )
    )
    participant = result.scalar_one_or_none()
    if participant is None:
        raise NotFoundError(f"{user_id} did not take part in challenge {challenge_id}")

    return {
        "challenge_id": challenge_id,
        "winner_user_id": summary.winner_user_id,
        "winner_points": summary.winner_points,
        "total_participants": summary.total_participants,
        "total_bet_pool": summary.total_bet_pool,
        "completion_type": summary.completion_type,
        "is_winner": summary.winner_user_id == user_id,
        "user_points": participant.final_points,
        "net_amount": participant.net_amount,
    }
