"""Invite codes: accepting an invite and rewarding the inviter."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.challenges.service import sync_xp_targets
from riyaz.config import get_settings
from riyaz.db.base import utcnow
from riyaz.db.models import Invite, Profile
from riyaz.errors import EngineError, InfrastructureError, ValidationError
from riyaz.gamification.xp_service import grant_xp
from riyaz.social.notification_service import queue_notification
from riyaz.week_utils import local_today, resolve_tz

logger = logging.getLogger(__name__)


async def get_invite_for(db: AsyncSession, invitee_id: int) -> Invite | None:
    result = await db.execute(select(Invite).where(Invite.invitee_id == invitee_id))
    return result.scalar_one_or_none()


async def _notify_inviter(db: AsyncSession, inviter: Profile, subtype: str, title: str, xp: int, invitee_id: int) -> None:
    if not inviter.notifications_enabled:
        return
    await queue_notification(
        db,
        inviter.id,
        "invite",
        subtype,
        title,
        f"You earned {xp} XP from your invite",
        {"invitee_id": invitee_id, "xp": xp},
        dedupe_key=f"{subtype}:{invitee_id}",
    )


async def accept_invite(db: AsyncSession, profile: Profile, code: str, now: datetime | None = None) -> dict[str, Any]:
    """Link the user to the owner of an invite code and reward the inviter."""
    user_id = profile.id
    try:
        result = await _accept(db, profile, code, now or utcnow())
        await db.commit()
    except EngineError as exc:
        await db.rollback()
        return exc.to_result()
    except IntegrityError:
        await db.rollback()
        existing = await get_invite_for(db, user_id)
        if existing is None:
            raise InfrastructureError()
        return {"ok": True, "alreadyAccepted": True, "inviterId": existing.inviter_id}
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Invite accept failed for user %s", user_id)
        raise InfrastructureError() from exc
    return result


async def _accept(db: AsyncSession, profile: Profile, code: str, now: datetime) -> dict[str, Any]:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("INVALID_INVITE", "Invite code is required")

    existing = await get_invite_for(db, profile.id)
    if existing is not None:
        return {"ok": True, "alreadyAccepted": True, "inviterId": existing.inviter_id}

    inviter = (
        await db.execute(select(Profile).where(func.upper(Profile.invite_code) == code))
    ).scalar_one_or_none()
    if inviter is None or inviter.id == profile.id:
        raise ValidationError("INVALID_INVITE", "Invite code is not valid")

    invite = Invite(inviter_id=inviter.id, invitee_id=profile.id, status="pending", created_at=now)
    db.add(invite)
    await db.flush()

    settings = get_settings()
    inviter_date = local_today(resolve_tz(inviter.tz, settings.default_timezone), now)
    grant = await grant_xp(
        db,
        inviter.id,
        settings.invite_signup_xp,
        "invite_signup",
        idempotency_key=f"invite_signup:{profile.id}",
        local_date=inviter_date,
        description="Friend joined with your invite",
    )
    if grant.granted:
        await sync_xp_targets(db, inviter.id, inviter_date, now)
    await _notify_inviter(db, inviter, "invite_signup", "A friend joined!", settings.invite_signup_xp, profile.id)
    logger.info("User %s accepted invite from %s", profile.id, inviter.id)
    return {"ok": True, "alreadyAccepted": False, "inviterId": inviter.id}


async def reward_invite_first_practice(db: AsyncSession, invitee_id: int, local_date: date) -> bool:
    """Reward the inviter once the invitee logs a first practice. Does not commit.

    Returns True when the reward was granted by this call.
    """
    invite = await get_invite_for(db, invitee_id)
    if invite is None or invite.status != "pending":
        return False

    settings = get_settings()
    grant = await grant_xp(
        db,
        invite.inviter_id,
        settings.invite_first_practice_xp,
        "invite_first_practice",
        idempotency_key=f"invite_first_practice:{invite.id}",
        local_date=local_date,
        description="Invited friend practiced for the first time",
    )
    if grant.granted:
        await sync_xp_targets(db, invite.inviter_id, local_date)
    invite.status = "accepted"
    invite.accepted_at = utcnow()

    inviter = await db.get(Profile, invite.inviter_id)
    if grant.granted and inviter is not None:
        await _notify_inviter(
            db, inviter, "invite_first_practice", "Invite reward!", settings.invite_first_practice_xp, invitee_id
        )
    return grant.granted
