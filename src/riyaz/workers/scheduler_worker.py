"""arq worker running challenge rollover, league finalization and league auto-join on a schedule.

Run with: arq riyaz.workers.scheduler_worker.SchedulerWorkerSettings

All jobs are re-entrant, so an overlap with the HTTP scheduler endpoints is
harmless.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from riyaz.challenges.rollover import rollover_periodic_challenges
from riyaz.config import get_settings
from riyaz.database import close_db, get_session_factory, init_db
from riyaz.leagues.finalize import finalize_weekly_leagues
from riyaz.leagues.service import auto_join_weekly_leagues
from riyaz.redis_client import close_redis, get_redis_or_none, init_redis

logger = logging.getLogger(__name__)


async def scheduler_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    ctx["redis_pub"] = get_redis_or_none()
    logger.info("Scheduler worker started")


async def scheduler_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_redis()
    await close_db()
    logger.info("Scheduler worker shut down")


async def challenge_rollover_job(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Hourly: users reach a new period at their own local midnight."""
    async with get_session_factory()() as db:
        result = await rollover_periodic_challenges(db)
    if result["errors"]:
        logger.error("Challenge rollover finished with %d errors", len(result["errors"]))
    return result


async def league_finalize_job(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Saturday early morning: archive last week's leagues."""
    async with get_session_factory()() as db:
        result = await finalize_weekly_leagues(db, redis=ctx.get("redis_pub"))
    if result["errors"]:
        logger.error("League finalization finished with %d errors", len(result["errors"]))
    return result


async def league_auto_join_job(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Saturday after finalize: seat eligible premium users in the new week's leagues."""
    async with get_session_factory()() as db:
        result = await auto_join_weekly_leagues(db)
    if result["errors"]:
        logger.error("League auto-join finished with %d errors", len(result["errors"]))
    return result


class SchedulerWorkerSettings:
    """arq worker settings for the rollover scheduler."""

    functions = [challenge_rollover_job, league_finalize_job, league_auto_join_job]
    cron_jobs = [
        cron(challenge_rollover_job, minute={5}),
        # Friday 21:00 UTC is Saturday 00:30 in Tehran
        cron(league_finalize_job, weekday=4, hour={21}, minute={0}),
        cron(league_auto_join_job, weekday=4, hour={21}, minute={30}),
    ]
    on_startup = scheduler_startup
    on_shutdown = scheduler_shutdown
    max_jobs = 3
    job_timeout = 600
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
