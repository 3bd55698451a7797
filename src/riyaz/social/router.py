"""Invite endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.auth.dependencies import get_current_user
from riyaz.database import get_session
from riyaz.db.models import Profile
from riyaz.errors import status_for_result
from riyaz.social.invite_service import accept_invite
from riyaz.social.schemas import AcceptInviteRequest

router = APIRouter(prefix="/api/v1", tags=["Social"])


@router.post("/invites/accept")
async def accept(
    body: AcceptInviteRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> JSONResponse:
    """Redeem another user's invite code."""
    result = await accept_invite(db, user, body.code)
    return JSONResponse(content=result, status_code=status_for_result(result))
