"""Global XP ranking.

Users are ordered by total XP descending, then by user id so the order is
stable between requests. Users without a counters row count as 0 XP.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.models import ProgressCounters, Profile
from riyaz.week_utils import calculate_percentile

SURROUNDING = 2


def _xp_column():
    return func.coalesce(ProgressCounters.total_xp, 0)


def _ranked_query():
    xp = _xp_column().label("xp")
    return (
        select(Profile.id, Profile.first_name, Profile.last_name, Profile.instrument, xp)
        .outerjoin(ProgressCounters, ProgressCounters.user_id == Profile.id)
        .order_by(_xp_column().desc(), Profile.id)
    )


def _entry(row: Any, rank: int, user_id: int) -> dict[str, Any]:
    name = f"{row.first_name or ''} {row.last_name or ''}".strip() or f"user-{row.id}"
    return {
        "rank": rank,
        "userId": row.id,
        "name": name,
        "instrument": row.instrument,
        "xp": int(row.xp),
        "isCurrentUser": row.id == user_id,
    }


async def get_global_ranking(db: AsyncSession, user_id: int) -> dict[str, Any]:
    total_users = (await db.execute(select(func.count()).select_from(Profile))).scalar_one()

    user_xp = int(
        (
            await db.execute(select(ProgressCounters.total_xp).where(ProgressCounters.user_id == user_id))
        ).scalar_one_or_none()
        or 0
    )

    ahead = (
        await db.execute(
            select(func.count())
            .select_from(Profile)
            .outerjoin(ProgressCounters, ProgressCounters.user_id == Profile.id)
            .where(
                or_(
                    _xp_column() > user_xp,
                    and_(_xp_column() == user_xp, Profile.id < user_id),
                )
            )
        )
    ).scalar_one()
    user_rank = ahead + 1

    top_rows = (await db.execute(_ranked_query().limit(3))).all()
    offset = max(user_rank - 1 - SURROUNDING, 0)
    around_rows = (await db.execute(_ranked_query().offset(offset).limit(SURROUNDING * 2 + 1))).all()

    return {
        "ok": True,
        "userRank": user_rank,
        "userXp": user_xp,
        "totalUsers": total_users,
        "percentile": calculate_percentile(user_rank, total_users),
        "topThree": [_entry(row, i, user_id) for i, row in enumerate(top_rows, start=1)],
        "surrounding": [_entry(row, offset + i, user_id) for i, row in enumerate(around_rows, start=1)],
    }
