"""Weekly leagues: eligibility, tier bucketing, placement, scoring and standings."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.config import Settings, get_settings
from riyaz.db.base import as_utc, utcnow
from riyaz.db.dialect import lock_user
from riyaz.db.models import DailyPracticeTotal, LeagueMember, PracticeLog, Profile, WeeklyLeague
from riyaz.errors import AuthorizationError, EngineError, InfrastructureError
from riyaz.week_utils import get_week_boundaries, get_week_start, local_today, resolve_tz

logger = logging.getLogger(__name__)

TIERS = ("beginner", "intermediate", "advanced")
REQUIRED_PROFILE_FIELDS = ("first_name", "instrument", "level")


@dataclass
class LeagueStanding:
    league_id: int
    xp_week: int
    rank: int | None
    skipped: bool = False

    def summary(self) -> dict[str, Any]:
        return {"id": self.league_id, "xpWeek": self.xp_week, "rank": self.rank}


def rank_key(member: LeagueMember) -> tuple:
    """Weekly XP desc, then who reached the score first, then who joined first."""
    return (
        -member.weekly_xp,
        as_utc(member.score_reached_at),
        as_utc(member.joined_at),
        member.user_id,
    )


def rank_members(members: Iterable[LeagueMember]) -> list[LeagueMember]:
    return sorted(members, key=rank_key)


def compute_bucket_tier(declared_level: str | None, trailing_minutes: int, settings: Settings | None = None) -> str:
    """Skill tier from the declared level, raised by recent practice volume."""
    settings = settings or get_settings()
    declared = declared_level if declared_level in TIERS else "beginner"
    if trailing_minutes >= settings.league_advanced_minutes:
        by_volume = "advanced"
    elif trailing_minutes >= settings.league_intermediate_minutes:
        by_volume = "intermediate"
    else:
        by_volume = "beginner"
    return max(declared, by_volume, key=TIERS.index)


def is_premium_active(profile: Profile, now: datetime | None = None) -> bool:
    expires = as_utc(profile.subscription_expires_at)
    return bool(profile.is_premium) and expires is not None and expires > (now or utcnow())


def check_eligibility(profile: Profile, now: datetime | None = None) -> None:
    """Raise INCOMPLETE_PROFILE or PREMIUM_REQUIRED when the user cannot join."""
    missing = {name: not getattr(profile, name) for name in REQUIRED_PROFILE_FIELDS}
    if any(missing.values()):
        raise AuthorizationError(
            "INCOMPLETE_PROFILE",
            "Complete your name, instrument and level to join a league",
            missingFields=missing,
        )
    if not is_premium_active(profile, now):
        raise AuthorizationError("PREMIUM_REQUIRED", "Weekly leagues need an active premium subscription")


async def get_trailing_minutes(db: AsyncSession, user_id: int, today: date, days: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(DailyPracticeTotal.minutes), 0)).where(
            DailyPracticeTotal.user_id == user_id,
            DailyPracticeTotal.local_date > today - timedelta(days=days),
            DailyPracticeTotal.local_date <= today,
        )
    )
    return int(result.scalar_one())


async def get_membership(db: AsyncSession, user_id: int, week_start: date) -> LeagueMember | None:
    result = await db.execute(
        select(LeagueMember).where(LeagueMember.user_id == user_id, LeagueMember.week_start == week_start)
    )
    return result.scalar_one_or_none()


async def get_league_members(db: AsyncSession, league_id: int) -> list[LeagueMember]:
    result = await db.execute(
        select(LeagueMember)
        .where(LeagueMember.league_id == league_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _place_in_league(
    db: AsyncSession,
    week_start: date,
    week_end: date,
    tier: str,
    settings: Settings,
) -> WeeklyLeague:
    """Reserve a seat in the fullest open league of the tier, or open a new one.

    The seat is taken with a conditional increment, so two concurrent joins can
    never push member_count past capacity.
    """
    candidates = (
        await db.execute(
            select(WeeklyLeague.id)
            .where(
                WeeklyLeague.week_start == week_start,
                WeeklyLeague.bucket_tier == tier,
                WeeklyLeague.status == "open",
                WeeklyLeague.member_count < WeeklyLeague.capacity,
            )
            .order_by(WeeklyLeague.member_count.desc(), WeeklyLeague.id)
        )
    ).scalars().all()

    for league_id in candidates:
        reserved = await db.execute(
            update(WeeklyLeague)
            .where(
                WeeklyLeague.id == league_id,
                WeeklyLeague.status == "open",
                WeeklyLeague.member_count < WeeklyLeague.capacity,
            )
            .values(member_count=WeeklyLeague.member_count + 1)
        )
        if reserved.rowcount:
            return (
                await db.execute(
                    select(WeeklyLeague)
                    .where(WeeklyLeague.id == league_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()

    league = WeeklyLeague(
        week_start=week_start,
        week_end=week_end,
        bucket_tier=tier,
        capacity=random.randint(settings.league_min_capacity, settings.league_max_capacity),
        member_count=1,
        status="open",
        created_at=utcnow(),
    )
    db.add(league)
    await db.flush()
    logger.info("Opened %s league %s for week %s (capacity %d)", tier, league.id, week_start, league.capacity)
    return league


async def join_weekly_league(db: AsyncSession, profile: Profile, now: datetime | None = None) -> dict[str, Any]:
    """Place the user in a league for the current week. Joining twice is a no-op."""
    user_id, tz_name = profile.id, profile.tz
    try:
        result = await _join(db, profile, now or utcnow())
        await db.commit()
    except EngineError as exc:
        await db.rollback()
        return exc.to_result()
    except IntegrityError:
        # lost a concurrent join for the same week
        await db.rollback()
        settings = get_settings()
        today = local_today(resolve_tz(tz_name, settings.default_timezone), now)
        existing = await get_membership(db, user_id, get_week_start(today))
        if existing is None:
            raise InfrastructureError()
        return {"ok": True, "alreadyMember": True, "leagueId": existing.league_id}
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("League join failed for user %s", user_id)
        raise InfrastructureError() from exc
    return result


async def _join(db: AsyncSession, profile: Profile, now: datetime, today: date | None = None) -> dict[str, Any]:
    check_eligibility(profile, now)
    settings = get_settings()
    today = today or local_today(resolve_tz(profile.tz, settings.default_timezone), now)
    week_start, week_end = get_week_boundaries(today)

    await lock_user(db, profile.id, scope="league")
    existing = await get_membership(db, profile.id, week_start)
    if existing is not None:
        return {"ok": True, "alreadyMember": True, "leagueId": existing.league_id}

    minutes = await get_trailing_minutes(db, profile.id, today, settings.league_tier_window_days)
    tier = compute_bucket_tier(profile.level, minutes, settings)
    league = await _place_in_league(db, week_start, week_end, tier, settings)

    db.add(LeagueMember(
        league_id=league.id,
        user_id=profile.id,
        week_start=week_start,
        weekly_xp=0,
        score_reached_at=now,
        joined_at=now,
    ))
    await db.flush()
    logger.info("User %s joined league %s (%s)", profile.id, league.id, tier)
    return {"ok": True, "alreadyMember": False, "leagueId": league.id, "tier": tier}


async def auto_join_weekly_leagues(
    db: AsyncSession,
    today: date | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Place every eligible premium user into a league for the current week.

    ``today`` pins the date for all users; when omitted each user's own local
    date is used. Each user is committed separately. Users who are already
    members or fail eligibility count as skipped.
    """
    now = now or utcnow()
    user_ids = (
        await db.execute(
            select(Profile.id)
            .where(
                Profile.is_premium.is_(True),
                Profile.first_name.is_not(None),
                Profile.instrument.is_not(None),
                Profile.level.is_not(None),
            )
            .order_by(Profile.id)
        )
    ).scalars().all()

    joined = skipped = 0
    errors: list[dict[str, Any]] = []

    for user_id in user_ids:
        try:
            profile = await db.get(Profile, user_id)
            if profile is None:
                continue
            result = await _join(db, profile, now, today)
            await db.commit()
        except EngineError:
            await db.rollback()
            skipped += 1
            continue
        except IntegrityError:
            # joined concurrently through the API
            await db.rollback()
            skipped += 1
            continue
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("League auto-join failed for user %s", user_id)
            errors.append({"userId": user_id, "error": str(exc)})
            continue
        if result["alreadyMember"]:
            skipped += 1
        else:
            joined += 1

    logger.info(
        "League auto-join: %d candidates, %d joined, %d skipped, %d errors",
        len(user_ids), joined, skipped, len(errors),
    )
    return {"ok": not errors, "joined": joined, "skipped": skipped, "errors": errors}


async def apply_practice_xp(
    db: AsyncSession,
    user_id: int,
    local_date: date,
    xp: int,
    now: datetime,
) -> LeagueStanding | None:
    """Add practice XP to the user's league score for the week of local_date.

    Returns None when the user is not in a league that week, and a skipped
    standing when the league is no longer open.
    """
    member = await get_membership(db, user_id, get_week_start(local_date))
    if member is None:
        return None

    # shared lock: finalization cannot lock the league while this score lands
    league = (
        await db.execute(
            select(WeeklyLeague)
            .where(WeeklyLeague.id == member.league_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    if league.status != "open":
        return LeagueStanding(league.id, member.weekly_xp, member.rank, skipped=True)

    if xp > 0:
        await db.execute(
            update(LeagueMember)
            .where(LeagueMember.id == member.id)
            .values(weekly_xp=LeagueMember.weekly_xp + xp, score_reached_at=now)
        )

    members = rank_members(await get_league_members(db, league.id))
    rank = next(i for i, m in enumerate(members, start=1) if m.user_id == user_id)
    me = members[rank - 1]
    return LeagueStanding(league.id, me.weekly_xp, rank)


async def get_current_league_summary(db: AsyncSession, user_id: int, today: date) -> dict[str, Any] | None:
    member = await get_membership(db, user_id, get_week_start(today))
    if member is None:
        return None
    members = rank_members(await get_league_members(db, member.league_id))
    rank = next(i for i, m in enumerate(members, start=1) if m.user_id == user_id)
    return {"id": member.league_id, "xpWeek": member.weekly_xp, "rank": member.rank or rank}


async def get_weekly_league(db: AsyncSession, profile: Profile, now: datetime | None = None) -> dict[str, Any]:
    """Standings of the user's league for the current week."""
    settings = get_settings()
    today = local_today(resolve_tz(profile.tz, settings.default_timezone), now)
    week_start, week_end = get_week_boundaries(today)

    practiced = (
        await db.execute(
            select(PracticeLog.id)
            .where(
                PracticeLog.user_id == profile.id,
                PracticeLog.local_date >= week_start,
                PracticeLog.local_date <= week_end,
            )
            .limit(1)
        )
    ).scalar_one_or_none() is not None

    view: dict[str, Any] = {
        "ok": True,
        "hasPracticedThisWeek": practiced,
        "inLeague": False,
        "weekStart": week_start.isoformat(),
        "weekEnd": week_end.isoformat(),
        "leaguePlayers": [],
        "userStatus": None,
    }

    member = await get_membership(db, profile.id, week_start)
    if member is None:
        return view

    members = rank_members(await get_league_members(db, member.league_id))
    user_ids = [m.user_id for m in members]
    profiles = {
        p.id: p for p in (await db.execute(select(Profile).where(Profile.id.in_(user_ids)))).scalars()
    }

    players = []
    for rank, m in enumerate(members, start=1):
        p = profiles.get(m.user_id)
        players.append({
            "userId": m.user_id,
            "name": p.display_name if p else f"user-{m.user_id}",
            "instrument": p.instrument if p else None,
            "weeklyPoints": m.weekly_xp,
            "rank": rank,
            "isCurrentUser": m.user_id == profile.id,
        })

    my_rank = user_ids.index(profile.id) + 1
    next_player = players[my_rank - 2] if my_rank > 1 else None
    league = member.league
    view.update(
        inLeague=True,
        leagueId=league.id,
        status=league.status,
        tier=league.bucket_tier,
        leaguePlayers=players,
        userStatus={
            "rank": my_rank,
            "weeklyPoints": member.weekly_xp,
            "pointsToNext": max(next_player["weeklyPoints"] - member.weekly_xp, 0) if next_player else 0,
            "nextPlayerRank": next_player["rank"] if next_player else None,
        },
    )
    return view
