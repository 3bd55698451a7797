"""Scheduler endpoints, called by an external cron with the shared secret."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import require_scheduler_secret
from riyaz.challenges.rollover import rollover_periodic_challenges
from riyaz.database import get_session
from riyaz.dependencies import get_redis_dep
from riyaz.leagues.finalize import finalize_weekly_leagues
from riyaz.leagues.service import auto_join_weekly_leagues
from riyaz.scheduler.schemas import AutoJoinResponse, FinalizeResponse, RolloverResponse, SchedulerRunRequest

router = APIRouter(
    prefix="/api/v1/scheduler",
    tags=["Scheduler"],
    dependencies=[Depends(require_scheduler_secret)],
)


@router.post("/challenges/rollover", response_model=RolloverResponse)
async def challenges_rollover(
    body: SchedulerRunRequest | None = None,
    db: AsyncSession = Depends(get_session),
):
    """Open this period's challenge instances and close ended ones."""
    return await rollover_periodic_challenges(db, today=body.today if body else None)


@router.post("/leagues/finalize", response_model=FinalizeResponse)
async def leagues_finalize(
    body: SchedulerRunRequest | None = None,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Rank, reward and archive leagues whose week has ended."""
    return await finalize_weekly_leagues(db, today=body.today if body else None, redis=redis)


@router.post("/leagues/auto-join", response_model=AutoJoinResponse)
async def leagues_auto_join(
    body: SchedulerRunRequest | None = None,
    db: AsyncSession = Depends(get_session),
):
    """Put every eligible premium user into this week's league."""
    return await auto_join_weekly_leagues(db, today=body.today if body else None)
