"""Ranking and achievements endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import get_current_user
from riyaz.config import get_settings
from riyaz.database import get_session
from riyaz.db.models import Profile
from riyaz.gamification.achievements_service import get_achievements
from riyaz.gamification.ranking_service import get_global_ranking
from riyaz.week_utils import local_today, resolve_tz

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.get("/ranking/global")
async def global_ranking(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """All-time XP ranking around the current user."""
    return await get_global_ranking(db, user.id)


@router.get("/achievements")
async def achievements(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    today = local_today(resolve_tz(user.tz, get_settings().default_timezone))
    return await get_achievements(db, user.id, today)
