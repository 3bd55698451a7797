"""XP ledger writes with idempotency and level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import utcnow
from riyaz.db.dialect import insert_ignore
from riyaz.db.models import ProgressCounters, XPLedger
from riyaz.gamification.level_thresholds import compute_level
from riyaz.social.notification_service import queue_notification

logger = logging.getLogger(__name__)

XP_PER_BLOCK = 10
MINUTES_PER_BLOCK = 15


def xp_for_minutes(minutes: int) -> int:
    """10 XP for every full 15 minutes practiced."""
    return minutes // MINUTES_PER_BLOCK * XP_PER_BLOCK


@dataclass
class XPGrant:
    granted: bool
    total_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


async def get_or_create_counters(db: AsyncSession, user_id: int) -> ProgressCounters:
    """Get or create the denormalized counters row for a user."""
    await insert_ignore(
        db,
        ProgressCounters,
        {
            "user_id": user_id,
            "total_xp": 0,
            "current_streak": 0,
            "best_streak": 0,
            "updated_at": utcnow(),
        },
        index_elements=["user_id"],
    )
    result = await db.execute(
        select(ProgressCounters)
        .where(ProgressCounters.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def grant_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    idempotency_key: str,
    local_date: date | None = None,
    linked_event_id: int | None = None,
    description: str | None = None,
) -> XPGrant:
    """Append a ledger entry and move the running total by the same delta.

    The ledger insert and the counter update happen in the caller's
    transaction. A repeated idempotency_key is a no-op (granted=False).
    """
    counters = await get_or_create_counters(db, user_id)
    old_level = compute_level(counters.total_xp)["level"]

    inserted = await insert_ignore(
        db,
        XPLedger,
        {
            "user_id": user_id,
            "delta": amount,
            "source": source,
            "local_date": local_date,
            "linked_event_id": linked_event_id,
            "description": description,
            "idempotency_key": idempotency_key,
            "created_at": utcnow(),
        },
        index_elements=["idempotency_key"],
    )
    if not inserted:
        return XPGrant(False, counters.total_xp, old_level, old_level)

    if amount:
        await db.execute(
            update(ProgressCounters)
            .where(ProgressCounters.user_id == user_id)
            .values(total_xp=ProgressCounters.total_xp + amount, updated_at=utcnow())
        )
        await db.refresh(counters, ["total_xp"])

    new_level = compute_level(counters.total_xp)["level"]
    grant = XPGrant(True, counters.total_xp, old_level, new_level)
    if grant.leveled_up:
        info = compute_level(counters.total_xp)
        await queue_notification(
            db,
            user_id,
            "gamification",
            "level_up",
            "Level Up!",
            f"Level {new_level}: {info['title']}",
            {"old_level": old_level, "new_level": new_level, "title": info["title"]},
            dedupe_key=f"level_up:{user_id}:{new_level}",
        )
    return grant


async def get_xp_for_date(db: AsyncSession, user_id: int, local_date: date) -> int:
    """Sum of ledger deltas recorded on a local date."""
    result = await db.execute(
        select(func.coalesce(func.sum(XPLedger.delta), 0)).where(
            XPLedger.user_id == user_id,
            XPLedger.local_date == local_date,
        )
    )
    return int(result.scalar_one())


async def get_xp_for_window(db: AsyncSession, user_id: int, start: date, end: date | None) -> int:
    """Sum of ledger deltas dated inside [start, end]; an open end has no upper bound."""
    query = select(func.coalesce(func.sum(XPLedger.delta), 0)).where(
        XPLedger.user_id == user_id,
        XPLedger.local_date >= start,
    )
    if end is not None:
        query = query.where(XPLedger.local_date <= end)
    return int((await db.execute(query)).scalar_one())


async def get_ledger_total(db: AsyncSession, user_id: int) -> int:
    """Authoritative XP total derived from the ledger."""
    result = await db.execute(
        select(func.coalesce(func.sum(XPLedger.delta), 0)).where(XPLedger.user_id == user_id)
    )
    return int(result.scalar_one())
