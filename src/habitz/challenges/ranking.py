"""Deterministic live ranking for a challenge.

Accepted participants ranked by points DESC, then user_id ASC.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.challenges.lifecycle import accepted_participants, challenge_points, get_challenge
from habitz.db.models import Profile
from habitz.resilience import bounded_store_call


def rank_participants(points: Mapping[str, int]) -> list[dict[str, Any]]:
    """Order ``user_id -> points`` into 1-indexed ranks."""
    ordered = sorted(points.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"rank": position, "user_id": user_id, "points": user_points}
        for position, (user_id, user_points) in enumerate(ordered, start=1)
    ]


@bounded_store_call("challenge_live_ranking")
async def live_ranking(db: AsyncSession, challenge_id: int) -> list[dict[str, Any]]:
    challenge = await get_challenge(db, challenge_id)
    participants = await accepted_participants(db, challenge_id)
    user_ids = [p.user_id for p in participants]
    ranking = rank_participants(await challenge_points(db, challenge, user_ids))

    profiles = await db.execute(select(Profile.id, Profile.username, Profile.avatar_url).where(Profile.id.in_(user_ids)))
    by_id = {row.id: row for row in profiles}
    for entry in ranking:
        profile = by_id.get(entry["user_id"])
        entry["username"] = profile.username if profile else None
        entry["avatar_url"] = profile.avatar_url if profile else None
    return ranking
