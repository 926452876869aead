"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from habitz.challenges.router import router as challenges_router
from habitz.checkins.router import router as checkins_router
from habitz.config import get_settings
from habitz.database import close_db, get_session, init_db
from habitz.gamification.router import router as gamification_router
from habitz.gamification.seed import seed_reference_data
from habitz.health.router import router as health_router
from habitz.middleware import setup_middleware
from habitz.redis_client import close_redis, init_redis
from habitz.social.router import router as social_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed activity types and achievements (idempotent)
    try:
        async for db in get_session():
            await seed_reference_data(db)
            break
    except Exception:
        logger.warning("Reference data seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Habitz API",
        description="Check-ins, streaks, achievements and challenges for the Habitz app",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(checkins_router)
    app.include_router(gamification_router)
    app.include_router(challenges_router)
    app.include_router(social_router)

    return app


app = create_app()
