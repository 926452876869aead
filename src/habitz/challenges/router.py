"""Challenge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.challenges.lifecycle import (
    accept_invite,
    create_challenge,
    decline_invite,
    list_active_challenges,
    list_challenge_invites,
    list_completed_challenges,
)
from habitz.challenges.ranking import live_ranking
from habitz.challenges.schemas import (
    ChallengeCreate,
    ChallengeListItem,
    ChallengeListResponse,
    ChallengeResponse,
    ParticipantResponse,
    RankingEntry,
    RankingResponse,
    SettlementView,
    SummaryResponse,
)
from habitz.challenges.settlement import get_challenge_summary, get_user_settlement, settle_challenge
from habitz.dependencies import get_current_user_id, get_db, get_redis_dep

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


@router.post("", response_model=ChallengeResponse, status_code=201)
async def create(
    body: ChallengeCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object | None = Depends(get_redis_dep),
):
    return await create_challenge(
        db,
        user_id,
        body.title,
        body.start_date,
        body.end_date,
        body.invitee_ids,
        activity_type_id=body.activity_type_id,
        description=body.description,
        has_bet=body.has_bet,
        bet_amount=body.bet_amount,
        redis=redis,
    )


@router.get("/active", response_model=ChallengeListResponse)
async def active(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    items = await list_active_challenges(db, user_id)
    return ChallengeListResponse(challenges=[ChallengeListItem(**i) for i in items])


@router.get("/invites", response_model=ChallengeListResponse)
async def invites(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    items = await list_challenge_invites(db, user_id)
    return ChallengeListResponse(challenges=[ChallengeListItem(**i) for i in items])


@router.get("/completed", response_model=ChallengeListResponse)
async def completed(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    items = await list_completed_challenges(db, user_id)
    return ChallengeListResponse(challenges=[ChallengeListItem(**i) for i in items])


@router.post("/{challenge_id}/accept", response_model=ParticipantResponse)
async def accept(
    challenge_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await accept_invite(db, user_id, challenge_id)


@router.post("/{challenge_id}/decline", response_model=ParticipantResponse)
async def decline(
    challenge_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await decline_invite(db, user_id, challenge_id)


@router.get("/{challenge_id}/ranking", response_model=RankingResponse)
async def ranking(
    challenge_id: int,
    _user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    entries = await live_ranking(db, challenge_id)
    return RankingResponse(challenge_id=challenge_id, ranking=[RankingEntry(**e) for e in entries])


@router.post("/{challenge_id}/settle", response_model=SummaryResponse)
async def settle(
    challenge_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object | None = Depends(get_redis_dep),
):
    """Settle a finished challenge. Idempotent; 403 for outsiders, 409 while it is still running."""
    return await settle_challenge(db, challenge_id, completion_type="manual", redis=redis, actor_id=user_id)


@router.get("/{challenge_id}/summary", response_model=SummaryResponse)
async def summary(
    challenge_id: int,
    _user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await get_challenge_summary(db, challenge_id)


@router.get("/{challenge_id}/settlement", response_model=SettlementView)
async def settlement(
    challenge_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's outcome in a settled challenge."""
    return SettlementView(**await get_user_settlement(db, challenge_id, user_id))
