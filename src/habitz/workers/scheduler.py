"""Scheduled arq worker: nightly streak rollover and challenge settlement.

Both jobs are idempotent, so a missed or repeated run only catches up.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron

from habitz.challenges.settlement import settle_due_challenges
from habitz.config import get_settings
from habitz.database import close_db, get_session_factory, init_db
from habitz.gamification.streak_service import rollover_streaks

logger = logging.getLogger(__name__)


async def scheduler_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB and (optional) Redis connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    ctx["redis"] = None
    if settings.redis_url:
        ctx["redis"] = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10,
        )
    logger.info("Scheduler worker started")


async def scheduler_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Scheduler worker shut down")


async def streak_rollover(ctx: dict) -> int:  # type: ignore[type-arg]
    """Charge missed days against every open streak."""
    async with get_session_factory()() as db:
        try:
            changed = await rollover_streaks(db)
        except Exception:
            logger.exception("Streak rollover failed")
            return 0
    logger.info("Streak rollover complete: %d profiles updated", changed)
    return changed


async def challenge_settlement(ctx: dict) -> int:  # type: ignore[type-arg]
    """Settle every challenge whose end date has passed."""
    async with get_session_factory()() as db:
        try:
            settled = await settle_due_challenges(db, redis=ctx.get("redis"))
        except Exception:
            logger.exception("Challenge settlement sweep failed")
            return 0
    logger.info("Challenge settlement complete: %d challenges settled", settled)
    return settled


class SchedulerWorkerSettings:
    """arq worker settings for the nightly jobs."""

    functions = [streak_rollover, challenge_settlement]
    cron_jobs = [
        cron(streak_rollover, hour=0, minute=5),
        cron(challenge_settlement, hour=0, minute=10),
    ]
    on_startup = scheduler_startup
    on_shutdown = scheduler_shutdown
    max_jobs = 2
    job_timeout = 600
    allow_abort_jobs = True
