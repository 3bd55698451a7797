"""Practice logging and dashboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import get_current_user
from riyaz.database import get_session
from riyaz.db.models import Profile
from riyaz.dependencies import get_redis_dep
from riyaz.errors import status_for_result
from riyaz.practice.schemas import PracticeLogRequest
from riyaz.practice.service import get_dashboard, log_practice

router = APIRouter(prefix="/api/v1", tags=["Practice"])


@router.post("/practice")
async def post_practice(
    body: PracticeLogRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
) -> JSONResponse:
    """Log a practice session. Retrying with the same idempotencyKey is safe."""
    result = await log_practice(db, redis, user, body.minutes, body.note, body.idempotency_key)
    return JSONResponse(content=result, status_code=status_for_result(result))


@router.get("/dashboard")
async def dashboard(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    return await get_dashboard(db, user)
