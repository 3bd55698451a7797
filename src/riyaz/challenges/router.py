"""Challenge endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import get_current_user
from riyaz.challenges.service import claim_reward, get_challenges_view
from riyaz.database import get_session
from riyaz.db.models import Profile
from riyaz.errors import status_for_result

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


@router.get("/challenges")
async def list_challenges(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Active, claimable and upcoming challenges for the current user."""
    return await get_challenges_view(db, user)


@router.post("/challenges/{instance_id}/claim")
async def claim(
    instance_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> JSONResponse:
    result = await claim_reward(db, instance_id, user.id)
    return JSONResponse(content=result, status_code=status_for_result(result))
