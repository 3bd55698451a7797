"""Periodic challenge rollover: open current-window instances, close ended ones.

Safe to run any number of times a day. Instances are created with
``ON CONFLICT DO NOTHING`` on (challenge_code, user_id, window_start), so a
second run in the same window is a no-op.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.challenges.rules import (
    ChallengeKind,
    ChallengeType,
    InstanceStatus,
    dump_progress,
    empty_progress,
)
from riyaz.config import get_settings
from riyaz.db.base import utcnow
from riyaz.db.dialect import insert_ignore
from riyaz.db.models import ChallengeDefinition, ChallengeInstance, Profile, UserChallengeProgress
from riyaz.week_utils import UnknownPeriodError, local_today, period_window, resolve_tz

logger = logging.getLogger(__name__)


async def get_auto_enroll_definitions(db: AsyncSession) -> list[ChallengeDefinition]:
    result = await db.execute(
        select(ChallengeDefinition)
        .where(ChallengeDefinition.status == "active", ChallengeDefinition.auto_enroll.is_(True))
        .order_by(ChallengeDefinition.sort_order, ChallengeDefinition.code)
    )
    return list(result.scalars().all())


async def _has_instance(db: AsyncSession, code: str, user_id: int) -> bool:
    result = await db.execute(
        select(ChallengeInstance.id)
        .where(ChallengeInstance.challenge_code == code, ChallengeInstance.user_id == user_id)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def enroll_user(db: AsyncSession, definition: ChallengeDefinition, user_id: int, today: date) -> bool:
    """Create the instance covering today plus its empty progress row.

    Periodic challenges get one instance per period window. Rolling ones get a
    single open-ended instance per user; a finished one is never replaced.
    Returns True when an instance was created.
    """
    if definition.kind == ChallengeKind.ROLLING.value:
        if await _has_instance(db, definition.code, user_id):
            return False
        window_start, window_end = today, None
    else:
        window_start, window_end = period_window(definition.period, today)

    created = await insert_ignore(
        db,
        ChallengeInstance,
        {
            "challenge_code": definition.code,
            "user_id": user_id,
            "window_start": window_start,
            "window_end": window_end,
            "status": InstanceStatus.OPEN.value,
            "created_at": utcnow(),
        },
        index_elements=["challenge_code", "user_id", "window_start"],
    )

    instance_id = (
        await db.execute(
            select(ChallengeInstance.id).where(
                ChallengeInstance.challenge_code == definition.code,
                ChallengeInstance.user_id == user_id,
                ChallengeInstance.window_start == window_start,
            )
        )
    ).scalar_one()

    await insert_ignore(
        db,
        UserChallengeProgress,
        {
            "instance_id": instance_id,
            "user_id": user_id,
            "progress": dump_progress(empty_progress(ChallengeType(definition.challenge_type))),
            "is_completed": False,
            "is_claimable": False,
            "updated_at": utcnow(),
        },
        index_elements=["instance_id"],
    )
    return created > 0


async def ensure_enrolled(db: AsyncSession, user_id: int, today: date) -> int:
    """Enroll a user in every auto-enroll challenge for today. Does not commit.

    A misconfigured definition is skipped so it cannot block practice logging.
    """
    created = 0
    for definition in await get_auto_enroll_definitions(db):
        try:
            if await enroll_user(db, definition, user_id, today):
                created += 1
        except UnknownPeriodError:
            logger.warning("Skipping challenge %s: invalid period %r", definition.code, definition.period)
    return created


async def close_ended_instances(db: AsyncSession, user_id: int, today: date) -> tuple[int, int]:
    """Close open instances whose window ended before today.

    Completed ones become done, the rest are locked. Returns (locked, done).
    """
    result = await db.execute(
        select(ChallengeInstance, UserChallengeProgress.is_completed)
        .outerjoin(UserChallengeProgress, UserChallengeProgress.instance_id == ChallengeInstance.id)
        .where(
            ChallengeInstance.user_id == user_id,
            ChallengeInstance.status == InstanceStatus.OPEN.value,
            ChallengeInstance.window_end.is_not(None),
            ChallengeInstance.window_end < today,
        )
    )
    locked = done = 0
    for instance, is_completed in result.unique().all():
        if is_completed:
            instance.status = InstanceStatus.DONE.value
            done += 1
        else:
            instance.status = InstanceStatus.LOCKED.value
            locked += 1
    await db.flush()
    return locked, done


async def rollover_periodic_challenges(db: AsyncSession, today: date | None = None) -> dict[str, Any]:
    """Run rollover for every user.

    ``today`` pins the local date for all users (tests, backfills); when omitted
    each user's own local date is used. Each user is committed separately so
    one failure does not undo the others.
    """
    settings = get_settings()
    definitions = await get_auto_enroll_definitions(db)
    users = (await db.execute(select(Profile.id, Profile.tz).order_by(Profile.id))).all()

    created = locked = done = 0
    errors: list[dict[str, Any]] = []

    for user_id, tz_name in users:
        user_today = today or local_today(resolve_tz(tz_name, settings.default_timezone))
        try:
            user_locked, user_done = await close_ended_instances(db, user_id, user_today)
            user_created = 0
            for definition in definitions:
                try:
                    if await enroll_user(db, definition, user_id, user_today):
                        user_created += 1
                except UnknownPeriodError as exc:
                    errors.append({"userId": user_id, "code": definition.code, "error": str(exc)})
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Challenge rollover failed for user %s", user_id)
            errors.append({"userId": user_id, "error": str(exc)})
            # rollback expired the loaded definitions
            definitions = await get_auto_enroll_definitions(db)
            continue
        created += user_created
        locked += user_locked
        done += user_done

    logger.info(
        "Challenge rollover: %d users, %d created, %d locked, %d done, %d errors",
        len(users), created, locked, done, len(errors),
    )
    return {"ok": not errors, "created": created, "locked": locked, "done": done, "errors": errors}
