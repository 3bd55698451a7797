"""Practice logging: the single write path for XP, streaks, challenges and leagues.

One call to ``log_practice`` runs one database transaction that

1. reserves the daily quota with a conditional increment,
2. appends the practice event,
3. appends the XP ledger entry and moves the counters,
4. updates the streak,
5. advances every open challenge whose window contains the local date,
6. adds the XP to the weekly league score when the league is still open.

Everything commits together or not at all. Retries with the same idempotency
key return the stored result of the first successful call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.challenges.rollover import ensure_enrolled
from riyaz.challenges.rules import PracticeContext
from riyaz.challenges.service import evaluate_practice, get_current_challenge_summary, pick_primary
from riyaz.config import Settings, get_settings
from riyaz.db.base import utcnow
from riyaz.db.dialect import insert_ignore, lock_user
from riyaz.db.models import DailyPracticeTotal, PracticeLog, Profile, ProgressCounters
from riyaz.errors import EngineError, InfrastructureError, RateLimitError, ValidationError
from riyaz.gamification.level_thresholds import compute_level
from riyaz.gamification.streak_service import apply_practice_day, effective_streak
from riyaz.gamification.xp_service import get_or_create_counters, get_xp_for_date, grant_xp, xp_for_minutes
from riyaz.leagues.service import apply_practice_xp, get_current_league_summary
from riyaz.social.invite_service import reward_invite_first_practice
from riyaz.social.notification_service import publish_events
from riyaz.week_utils import local_today, resolve_tz

logger = logging.getLogger(__name__)


@dataclass
class PracticeOutcome:
    result: dict[str, Any]
    local_date: date | None = None
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    replayed: bool = False


def validate_submission(
    minutes: int | None, idempotency_key: str | None, settings: Settings
) -> tuple[int, str]:
    """Checked (minutes, idempotency_key) of a submission."""
    if minutes is None or not settings.practice_min_minutes <= minutes <= settings.practice_max_minutes:
        raise ValidationError(
            "MIN_DURATION",
            f"Minutes must be between {settings.practice_min_minutes} and {settings.practice_max_minutes}",
        )
    if not idempotency_key or not idempotency_key.strip():
        raise ValidationError("MISSING_IDEMPOTENCY_KEY", "Idempotency key required")
    return minutes, idempotency_key


async def get_stored_result(db: AsyncSession, user_id: int, idempotency_key: str) -> dict[str, Any] | None:
    """Result snapshot of an already committed submission with this key."""
    result = await db.execute(
        select(PracticeLog.result).where(
            PracticeLog.user_id == user_id,
            PracticeLog.idempotency_key == idempotency_key,
        )
    )
    stored = result.scalar_one_or_none()
    return dict(stored) if stored is not None else None


async def reserve_daily_quota(
    db: AsyncSession,
    user_id: int,
    local_date: date,
    minutes: int,
    settings: Settings,
) -> int:
    """Count this submission against the daily caps. Returns the day's submission count.

    The increment only applies while both caps hold, so concurrent submissions
    cannot overshoot either of them.
    """
    await insert_ignore(
        db,
        DailyPracticeTotal,
        {"user_id": user_id, "local_date": local_date, "logs_count": 0, "minutes": 0},
        index_elements=["user_id", "local_date"],
    )
    reserved = await db.execute(
        update(DailyPracticeTotal)
        .where(
            DailyPracticeTotal.user_id == user_id,
            DailyPracticeTotal.local_date == local_date,
            DailyPracticeTotal.logs_count < settings.daily_max_logs,
            DailyPracticeTotal.minutes + minutes <= settings.daily_max_minutes,
        )
        .values(
            logs_count=DailyPracticeTotal.logs_count + 1,
            minutes=DailyPracticeTotal.minutes + minutes,
        )
    )

    totals = (
        await db.execute(
            select(DailyPracticeTotal)
            .where(DailyPracticeTotal.user_id == user_id, DailyPracticeTotal.local_date == local_date)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    if not reserved.rowcount:
        if totals.logs_count >= settings.daily_max_logs:
            raise RateLimitError(
                "DAILY_LIMIT_REACHED",
                f"You can log at most {settings.daily_max_logs} sessions per day",
                logsToday=totals.logs_count,
            )
        raise RateLimitError(
            "DAILY_MINUTES_EXCEEDED",
            f"You can log at most {settings.daily_max_minutes} minutes per day",
            remainingMinutes=max(settings.daily_max_minutes - totals.minutes, 0),
        )
    return totals.logs_count


async def log_practice(
    db: AsyncSession,
    redis: object,
    profile: Profile,
    minutes: int | None,
    note: str | None,
    idempotency_key: str | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Record a practice session and apply all of its consequences atomically.

    Returns the result dict (``ok: false`` with a code for rejected
    submissions). Storage failures raise ``InfrastructureError``.
    """
    settings = get_settings()
    user_id, tz_name = profile.id, profile.tz
    now = now or utcnow()

    try:
        minutes, idempotency_key = validate_submission(minutes, idempotency_key, settings)
    except ValidationError as exc:
        return exc.to_result()

    local_date = local_today(resolve_tz(tz_name, settings.default_timezone), now)
    try:
        outcome = await _record(db, user_id, minutes, note, idempotency_key, local_date, now, settings)
        await db.commit()
    except EngineError as exc:
        await db.rollback()
        return exc.to_result()
    except IntegrityError as exc:
        # a concurrent retry with the same key committed first
        await db.rollback()
        stored = await get_stored_result(db, user_id, idempotency_key)
        if stored is not None:
            return stored
        logger.exception("Practice log integrity failure for user %s", user_id)
        raise InfrastructureError() from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Practice log failed for user %s", user_id)
        raise InfrastructureError() from exc

    if not outcome.replayed:
        await _after_commit(db, redis, user_id, outcome)
    return outcome.result


async def _record(
    db: AsyncSession,
    user_id: int,
    minutes: int,
    note: str | None,
    idempotency_key: str,
    local_date: date,
    now: datetime,
    settings: Settings,
) -> PracticeOutcome:
    await lock_user(db, user_id)
    stored = await get_stored_result(db, user_id, idempotency_key)
    if stored is not None:
        return PracticeOutcome(stored, replayed=True)

    logs_today = await reserve_daily_quota(db, user_id, local_date, minutes, settings)

    event = PracticeLog(
        user_id=user_id,
        minutes=minutes,
        note=note,
        local_date=local_date,
        idempotency_key=idempotency_key,
        created_at=now,
    )
    db.add(event)
    await db.flush()

    xp = xp_for_minutes(minutes)
    grant = await grant_xp(
        db,
        user_id,
        xp,
        "practice",
        idempotency_key=f"practice:{event.id}",
        local_date=local_date,
        linked_event_id=event.id,
        description=f"Practice {minutes} min",
    )

    counters = await get_or_create_counters(db, user_id)
    await apply_practice_day(db, counters, local_date, first_of_day=logs_today == 1)

    await ensure_enrolled(db, user_id, local_date)
    challenge_updates = await evaluate_practice(
        db, user_id, PracticeContext(local_date, xp, counters.current_streak), now
    )
    standing = await apply_practice_xp(db, user_id, local_date, xp, now)
    xp_today = await get_xp_for_date(db, user_id, local_date)

    level = compute_level(counters.total_xp)
    primary = pick_primary(challenge_updates)
    result: dict[str, Any] = {
        "ok": True,
        "eventId": event.id,
        "localDate": local_date.isoformat(),
        "xpGained": xp,
        "xpToday": xp_today,
        "xpTotal": counters.total_xp,
        "level": {"current": level["level"], "title": level["title"], "leveledUp": grant.leveled_up},
        "streak": {"current": counters.current_streak, "best": counters.best_streak},
        "challenge": primary.summary() if primary else None,
        "league": standing.summary() if standing else None,
    }
    if standing is not None and standing.skipped:
        result.update(
            leagueUpdateSkipped=True,
            code="LEAGUE_LOCKED",
            message="This week's league is closed; practice still counts for XP and streaks",
        )

    event.result = result
    await db.flush()

    events: list[tuple[str, dict[str, Any]]] = [
        ("practice_logged", {"user_id": user_id, "event_id": event.id, "minutes": minutes, "xp": xp}),
    ]
    if grant.leveled_up:
        events.append(("level_up", {"user_id": user_id, "old_level": grant.old_level, "new_level": grant.new_level}))
    for update_ in challenge_updates:
        if update_.newly_completed:
            events.append(("challenge_completed", {"user_id": user_id, "instance_id": update_.instance_id}))

    logger.info("User %s logged %d min on %s (+%d XP)", user_id, minutes, local_date, xp)
    return PracticeOutcome(result, local_date, events)


async def _after_commit(db: AsyncSession, redis: object, user_id: int, outcome: PracticeOutcome) -> None:
    """Side effects that must never undo a committed practice."""
    await publish_events(redis, outcome.events)
    if outcome.local_date is None:
        return
    try:
        await reward_invite_first_practice(db, user_id, outcome.local_date)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Invite first-practice reward failed for user %s", user_id, exc_info=True)


async def get_dashboard(db: AsyncSession, profile: Profile, now: datetime | None = None) -> dict[str, Any]:
    """Today's totals, level, streak and the current challenge/league cards."""
    settings = get_settings()
    today = local_today(resolve_tz(profile.tz, settings.default_timezone), now)

    totals = await db.get(DailyPracticeTotal, (profile.id, today))
    counters = await db.get(ProgressCounters, profile.id)
    total_xp = counters.total_xp if counters else 0
    level = compute_level(total_xp)
    logs = totals.logs_count if totals else 0
    minutes = totals.minutes if totals else 0

    return {
        "ok": True,
        "today": {
            "date": today.isoformat(),
            "minutes": minutes,
            "logs": logs,
            "xpToday": await get_xp_for_date(db, profile.id, today),
            "remainingLogs": max(settings.daily_max_logs - logs, 0),
            "remainingMinutes": max(settings.daily_max_minutes - minutes, 0),
        },
        "xpTotal": total_xp,
        "level": {
            "current": level["level"],
            "title": level["title"],
            "xpForNextLevel": level["xp_for_next_level"],
            "progressPercent": level["progress_percent"],
        },
        "streak": {
            "current": effective_streak(counters, today) if counters else 0,
            "best": counters.best_streak if counters else 0,
        },
        "challenge": await get_current_challenge_summary(db, profile.id, today),
        "league": await get_current_league_summary(db, profile.id, today),
    }
