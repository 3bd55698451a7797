"""Daily practice streaks."""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import utcnow
from riyaz.db.models import DailyPracticeTotal, ProgressCounters


def next_streak(current: int, first_of_day: bool, practiced_day_before: bool) -> int:
    """Streak after a practice event.

    Only the first event of a local day moves the streak: +1 when the previous
    day had practice, otherwise a fresh streak of 1.
    """
    if not first_of_day:
        return max(current, 1)
    return current + 1 if practiced_day_before else 1


def effective_streak(counters: ProgressCounters, today: date) -> int:
    """Streak as of today: a streak is still alive until a full day is missed."""
    if counters.last_active_date is None:
        return 0
    if counters.last_active_date >= today - timedelta(days=1):
        return counters.current_streak
    return 0


async def practiced_on(db: AsyncSession, user_id: int, day: date) -> bool:
    result = await db.execute(
        select(DailyPracticeTotal.logs_count).where(
            DailyPracticeTotal.user_id == user_id,
            DailyPracticeTotal.local_date == day,
        )
    )
    count = result.scalar_one_or_none()
    return bool(count)


async def apply_practice_day(
    db: AsyncSession,
    counters: ProgressCounters,
    local_date: date,
    first_of_day: bool,
) -> ProgressCounters:
    """Recompute current/best streak for a practice on local_date."""
    if first_of_day:
        before = await practiced_on(db, counters.user_id, local_date - timedelta(days=1))
        counters.current_streak = next_streak(counters.current_streak, True, before)
    else:
        counters.current_streak = next_streak(counters.current_streak, False, True)
    counters.best_streak = max(counters.best_streak, counters.current_streak)
    if counters.last_active_date is None or local_date > counters.last_active_date:
        counters.last_active_date = local_date
    counters.updated_at = utcnow()
    await db.flush()
    return counters
