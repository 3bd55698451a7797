"""Medal grants with duplicate prevention."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import utcnow
from riyaz.db.dialect import insert_ignore
from riyaz.db.models import Medal, UserMedal

logger = logging.getLogger(__name__)


async def get_medal_by_code(db: AsyncSession, code: str) -> Medal | None:
    """Fetch a medal definition by code."""
    result = await db.execute(select(Medal).where(Medal.code == code))
    return result.scalar_one_or_none()


async def grant_medal(db: AsyncSession, user_id: int, code: str) -> bool:
    """Grant a medal to a user.

    Returns True if granted now, False if already held or the code is unknown.
    Granting the same code twice is a no-op (UNIQUE(user_id, medal_id)).
    """
    medal = await get_medal_by_code(db, code)
    if medal is None:
        logger.warning("Medal not found: %s", code)
        return False

    inserted = await insert_ignore(
        db,
        UserMedal,
        {"user_id": user_id, "medal_id": medal.id, "earned_at": utcnow()},
        index_elements=["user_id", "medal_id"],
    )
    return inserted > 0


async def get_user_medals(db: AsyncSession, user_id: int) -> list[UserMedal]:
    result = await db.execute(
        select(UserMedal).where(UserMedal.user_id == user_id).order_by(UserMedal.earned_at.desc())
    )
    return list(result.scalars().all())
