"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from riyaz.challenges.router import router as challenges_router
from riyaz.config import get_settings
from riyaz.database import close_db, get_session_factory, init_db
from riyaz.gamification.router import router as gamification_router
from riyaz.gamification.seed import seed_catalogue
from riyaz.health.router import router as health_router
from riyaz.leagues.router import router as leagues_router
from riyaz.middleware import setup_middleware
from riyaz.practice.router import router as practice_router
from riyaz.rate_limiter import build_rate_limiter
from riyaz.redis_client import close_redis, get_redis_or_none, init_redis
from riyaz.scheduler.router import router as scheduler_router
from riyaz.social.router import router as social_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    app.state.rate_limiter = build_rate_limiter(settings, get_redis_or_none())

    # Seed medal and challenge catalogue (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_catalogue(db)
    except SQLAlchemyError:
        logger.warning("Catalogue seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Riyaz API",
        description="Practice tracking and gamification engine for music learners",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(practice_router)
    app.include_router(challenges_router)
    app.include_router(leagues_router)
    app.include_router(gamification_router)
    app.include_router(social_router)
    app.include_router(scheduler_router)

    return app


app = create_app()
