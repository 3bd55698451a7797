"""End-of-week league finalization: lock, rank, reward, archive."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.config import get_settings
from riyaz.db.base import utcnow
from riyaz.db.models import WeeklyLeague
from riyaz.gamification.medal_service import grant_medal
from riyaz.leagues.service import get_league_members, rank_members
from riyaz.social.notification_service import publish_events, queue_notification
from riyaz.week_utils import local_today, resolve_tz

logger = logging.getLogger(__name__)

PODIUM_MEDALS = {1: "league-first", 2: "league-second", 3: "league-third"}


async def _finalize_league(db: AsyncSession, league_id: int) -> list[tuple[str, dict[str, Any]]]:
    """Finalize one league inside the current transaction. Returns events to publish."""
    league = (
        await db.execute(
            select(WeeklyLeague)
            .where(WeeklyLeague.id == league_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    if league.status == "archived":
        return []

    # stop practice writes from moving scores while ranks are computed
    league.status = "locked"
    await db.flush()

    members = rank_members(await get_league_members(db, league.id))
    total = len(members)
    events: list[tuple[str, dict[str, Any]]] = []

    for rank, member in enumerate(members, start=1):
        member.rank = rank
        medal_code = PODIUM_MEDALS.get(rank)
        if medal_code:
            await grant_medal(db, member.user_id, medal_code)
        await queue_notification(
            db,
            member.user_id,
            "league",
            "league_result",
            "Weekly league finished",
            f"You finished #{rank} of {total} with {member.weekly_xp} XP",
            {"league_id": league.id, "rank": rank, "weekly_xp": member.weekly_xp, "medal": medal_code},
            dedupe_key=f"league_result:{league.id}:{member.user_id}",
        )
        events.append(("league_result", {"user_id": member.user_id, "league_id": league.id, "rank": rank}))

    league.status = "archived"
    league.finalized_at = utcnow()
    await db.flush()
    return events


async def finalize_weekly_leagues(
    db: AsyncSession,
    today: date | None = None,
    redis: object = None,
) -> dict[str, Any]:
    """Finalize every open or locked league whose week ended before today.

    Each league is committed on its own. Running again only picks up leagues
    that are still not archived, so re-runs are harmless.
    """
    today = today or local_today(resolve_tz(None, get_settings().default_timezone))
    league_ids = (
        await db.execute(
            select(WeeklyLeague.id)
            .where(WeeklyLeague.status.in_(("open", "locked")), WeeklyLeague.week_end < today)
            .order_by(WeeklyLeague.id)
        )
    ).scalars().all()

    finalized: list[int] = []
    errors: list[dict[str, Any]] = []
    events: list[tuple[str, dict[str, Any]]] = []

    for league_id in league_ids:
        try:
            league_events = await _finalize_league(db, league_id)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("League finalization failed for league %s", league_id)
            errors.append({"leagueId": league_id, "error": str(exc)})
            continue
        finalized.append(league_id)
        events.extend(league_events)

    await publish_events(redis, events)
    logger.info("Finalized %d leagues (%d errors)", len(finalized), len(errors))
    return {"ok": not errors, "finalized": finalized, "errors": errors}
