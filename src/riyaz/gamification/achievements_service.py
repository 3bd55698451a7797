"""Achievements screen: level progress, medals and the last league result."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import as_utc
from riyaz.db.models import LeagueMember, Medal, ProgressCounters, WeeklyLeague
from riyaz.gamification.level_thresholds import compute_level
from riyaz.gamification.medal_service import get_user_medals
from riyaz.gamification.streak_service import effective_streak


async def get_last_league_result(db: AsyncSession, user_id: int) -> dict[str, Any] | None:
    result = await db.execute(
        select(LeagueMember)
        .join(WeeklyLeague, LeagueMember.league_id == WeeklyLeague.id)
        .where(LeagueMember.user_id == user_id, WeeklyLeague.status == "archived")
        .order_by(LeagueMember.week_start.desc())
        .limit(1)
    )
    member = result.scalar_one_or_none()
    if member is None:
        return None
    return {
        "leagueId": member.league_id,
        "weekStart": member.week_start.isoformat(),
        "rank": member.rank,
        "weeklyXp": member.weekly_xp,
        "tier": member.league.bucket_tier,
    }


async def get_achievements(db: AsyncSession, user_id: int, today: date) -> dict[str, Any]:
    counters = await db.get(ProgressCounters, user_id)
    total_xp = counters.total_xp if counters else 0
    info = compute_level(total_xp)

    earned = {um.medal_id: um for um in await get_user_medals(db, user_id)}
    medals = (await db.execute(select(Medal).order_by(Medal.id))).scalars().all()
    badges = [
        {
            "code": m.code,
            "title": m.title,
            "description": m.description,
            "earned": m.id in earned,
            "earnedAt": as_utc(earned[m.id].earned_at).isoformat() if m.id in earned else None,
        }
        for m in medals
    ]

    return {
        "ok": True,
        "level": {
            "current": info["level"],
            "title": info["title"],
            "xpTotal": total_xp,
            "xpForNextLevel": info["xp_for_next_level"],
            "progressPercent": info["progress_percent"],
        },
        "streak": {
            "current": effective_streak(counters, today) if counters else 0,
            "best": counters.best_streak if counters else 0,
        },
        "badges": badges,
        "league": await get_last_league_result(db, user_id),
    }
