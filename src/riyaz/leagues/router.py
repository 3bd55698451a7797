"""Weekly league endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import get_current_user
from riyaz.database import get_session
from riyaz.db.models import Profile
from riyaz.errors import status_for_result
from riyaz.leagues.service import get_weekly_league, join_weekly_league

router = APIRouter(prefix="/api/v1", tags=["Leagues"])


@router.get("/leagues/weekly")
async def weekly_league(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Standings of the current user's league for this week."""
    return await get_weekly_league(db, user)


@router.post("/leagues/weekly/join")
async def join_league(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> JSONResponse:
    result = await join_weekly_league(db, user)
    return JSONResponse(content=result, status_code=status_for_result(result))
