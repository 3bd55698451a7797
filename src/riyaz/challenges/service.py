"""Challenge progress evaluation, reward claims and the challenges view."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from sqlalchemy import Select, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.challenges.rules import (
    ChallengeKind,
    ChallengeType,
    InstanceStatus,
    PracticeContext,
    Progress,
    XpTargetProgress,
    advance,
    dump_progress,
    is_complete,
    load_progress,
)
from riyaz.config import get_settings
from riyaz.db.base import as_utc, utcnow
from riyaz.db.dialect import lock_user
from riyaz.db.models import ChallengeDefinition, ChallengeInstance, Profile, UserChallengeProgress
from riyaz.errors import EngineError, InfrastructureError, NotFoundError, StateConflictError
from riyaz.gamification.medal_service import grant_medal
from riyaz.gamification.xp_service import get_xp_for_window, grant_xp
from riyaz.social.notification_service import queue_notification
from riyaz.week_utils import UnknownPeriodError, get_week_boundaries, local_today, next_period_window, resolve_tz

logger = logging.getLogger(__name__)


@dataclass
class ChallengeUpdate:
    instance_id: int
    code: str
    challenge_type: ChallengeType
    period: str | None
    current: int
    target: int
    is_completed: bool
    newly_completed: bool

    def summary(self) -> dict[str, Any]:
        return {"daysDone": self.current, "target": self.target, "isCompleted": self.is_completed}


def pick_primary(updates: list[ChallengeUpdate]) -> ChallengeUpdate | None:
    """The challenge shown on the practice/dashboard cards: the weekly
    days-in-period challenge when enrolled, otherwise the first one."""
    for update in updates:
        if update.challenge_type is ChallengeType.DAYS_IN_PERIOD and update.period == "week":
            return update
    return updates[0] if updates else None


def _open_progress_query(user_id: int, local_date: date) -> Select:
    """Open, uncompleted progress rows whose instance window contains local_date."""
    return (
        select(UserChallengeProgress)
        .join(ChallengeInstance, UserChallengeProgress.instance_id == ChallengeInstance.id)
        .where(
            UserChallengeProgress.user_id == user_id,
            UserChallengeProgress.is_completed.is_(False),
            ChallengeInstance.status == InstanceStatus.OPEN.value,
            ChallengeInstance.window_start <= local_date,
            or_(ChallengeInstance.window_end.is_(None), ChallengeInstance.window_end >= local_date),
        )
        .order_by(ChallengeInstance.id)
        .with_for_update(of=UserChallengeProgress)
    )


async def _store_progress(
    db: AsyncSession,
    row: UserChallengeProgress,
    progress: Progress,
    now: datetime,
) -> ChallengeUpdate:
    """Persist new progress; completing marks it claimable and moves the instance to done."""
    instance = row.instance
    definition = instance.definition
    row.progress = dump_progress(progress)
    row.updated_at = now

    completed = is_complete(progress, definition.target)
    if completed:
        row.is_completed = True
        row.completed_at = now
        row.is_claimable = True
        instance.status = InstanceStatus.DONE.value
        await queue_notification(
            db,
            row.user_id,
            "challenge",
            "challenge_completed",
            "Challenge complete!",
            f"{definition.title} is done. Claim your reward.",
            {"instance_id": instance.id, "code": definition.code, "xp": definition.reward_xp},
            dedupe_key=f"challenge_completed:{instance.id}",
        )

    return ChallengeUpdate(
        instance_id=instance.id,
        code=definition.code,
        challenge_type=ChallengeType(definition.challenge_type),
        period=definition.period,
        current=progress.current,
        target=definition.target,
        is_completed=completed,
        newly_completed=completed,
    )


async def evaluate_practice(
    db: AsyncSession,
    user_id: int,
    ctx: PracticeContext,
    now: datetime | None = None,
) -> list[ChallengeUpdate]:
    """Advance every open, uncompleted instance whose window contains the practice date.

    Runs inside the practice transaction, after the practice XP is in the
    ledger. XP-target instances take the ledger total for their window.
    """
    result = await db.execute(_open_progress_query(user_id, ctx.local_date))
    updates: list[ChallengeUpdate] = []
    now = now or utcnow()

    for row in result.scalars().unique():
        instance = row.instance
        challenge_type = ChallengeType(instance.definition.challenge_type)
        instance_ctx = ctx
        if challenge_type is ChallengeType.XP_TARGET:
            window_xp = await get_xp_for_window(db, user_id, instance.window_start, instance.window_end)
            instance_ctx = replace(ctx, window_xp=window_xp)

        progress = advance(load_progress(challenge_type, row.progress), instance_ctx)
        updates.append(await _store_progress(db, row, progress, now))

    await db.flush()
    return updates


async def sync_xp_targets(
    db: AsyncSession,
    user_id: int,
    local_date: date,
    now: datetime | None = None,
) -> list[ChallengeUpdate]:
    """Resync XP-target progress after XP from a source other than practice.

    Covers reward claims and invite grants dated on local_date. Does not commit.
    """
    result = await db.execute(
        _open_progress_query(user_id, local_date).join(
            ChallengeDefinition, ChallengeInstance.challenge_code == ChallengeDefinition.code
        ).where(ChallengeDefinition.challenge_type == ChallengeType.XP_TARGET.value)
    )
    updates: list[ChallengeUpdate] = []
    now = now or utcnow()

    for row in result.scalars().unique():
        instance = row.instance
        window_xp = await get_xp_for_window(db, user_id, instance.window_start, instance.window_end)
        updates.append(await _store_progress(db, row, XpTargetProgress(window_xp), now))

    await db.flush()
    return updates


async def claim_reward(
    db: AsyncSession,
    instance_id: int,
    user_id: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Claim the reward of a completed instance. Safe to retry."""
    try:
        result = await _claim(db, instance_id, user_id, now)
        await db.commit()
    except EngineError as exc:
        await db.rollback()
        return exc.to_result()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Claim failed for instance %s user %s", instance_id, user_id)
        raise InfrastructureError() from exc
    return result


async def _claim(db: AsyncSession, instance_id: int, user_id: int, now: datetime | None) -> dict[str, Any]:
    await lock_user(db, user_id, scope="claim")
    result = await db.execute(
        select(UserChallengeProgress)
        .where(
            UserChallengeProgress.instance_id == instance_id,
            UserChallengeProgress.user_id == user_id,
        )
        .with_for_update(of=UserChallengeProgress)
    )
    row = result.scalars().unique().one_or_none()
    if row is None:
        raise NotFoundError("NOT_FOUND", "Challenge instance not found")
    if row.claimed_at is not None:
        return {"ok": True, "alreadyClaimed": True, "claimedAt": as_utc(row.claimed_at).isoformat()}
    if not row.is_completed:
        raise StateConflictError("NOT_COMPLETED", "Challenge is not completed yet")

    definition = row.instance.definition
    profile = await db.get(Profile, user_id)
    tz = resolve_tz(profile.tz if profile else None, get_settings().default_timezone)
    claimed_at = now or utcnow()
    local_date = local_today(tz, claimed_at)

    grant = await grant_xp(
        db,
        user_id,
        definition.reward_xp,
        "challenge_reward",
        idempotency_key=f"challenge_reward:{instance_id}",
        local_date=local_date,
        description=f"Challenge reward: {definition.title}",
    )
    if grant.granted:
        await sync_xp_targets(db, user_id, local_date, claimed_at)
    badge_granted = False
    if definition.reward_badge_code:
        badge_granted = await grant_medal(db, user_id, definition.reward_badge_code)

    row.claimed_at = claimed_at
    row.is_claimable = False
    row.updated_at = claimed_at
    await db.flush()

    logger.info("User %s claimed %s (instance %s)", user_id, definition.code, instance_id)
    return {
        "ok": True,
        "alreadyClaimed": False,
        "xpAwarded": definition.reward_xp if grant.granted else 0,
        "badgeGranted": badge_granted,
        "claimedAt": claimed_at.isoformat(),
    }


def _active_entry(row: UserChallengeProgress) -> dict[str, Any]:
    instance = row.instance
    definition = instance.definition
    progress = load_progress(ChallengeType(definition.challenge_type), row.progress)
    return {
        "instanceId": instance.id,
        "code": definition.code,
        "title": definition.title,
        "kind": definition.kind,
        "type": definition.challenge_type,
        "targetDays": definition.target,
        "daysDone": progress.current,
        "current": progress.current,
        "status": instance.status,
        "isCompleted": row.is_completed,
        "isClaimable": row.is_claimable,
        "windowStart": instance.window_start.isoformat(),
        "windowEnd": instance.window_end.isoformat() if instance.window_end else None,
    }


def _claimable_entry(row: UserChallengeProgress) -> dict[str, Any]:
    definition = row.instance.definition
    return {
        "instanceId": row.instance.id,
        "code": definition.code,
        "title": definition.title,
        "reward": {
            "xp": definition.reward_xp,
            "badge_code": definition.reward_badge_code,
            "claimable": True,
        },
        "completedAt": as_utc(row.completed_at).isoformat() if row.completed_at else None,
    }


async def get_challenges_view(db: AsyncSession, profile: Profile, now: datetime | None = None) -> dict[str, Any]:
    """Partition the user's challenges into active, claimable and upcoming. Read-only."""
    tz = resolve_tz(profile.tz, get_settings().default_timezone)
    today = local_today(tz, now)
    week_start, week_end = get_week_boundaries(today)

    rows = (
        await db.execute(
            select(UserChallengeProgress)
            .join(ChallengeInstance, UserChallengeProgress.instance_id == ChallengeInstance.id)
            .where(UserChallengeProgress.user_id == profile.id)
            .order_by(ChallengeInstance.window_start, ChallengeInstance.id)
        )
    ).scalars().unique().all()

    active: list[dict[str, Any]] = []
    claimable: list[dict[str, Any]] = []
    enrolled_windows: set[tuple[str, date]] = set()
    for row in rows:
        instance = row.instance
        enrolled_windows.add((instance.challenge_code, instance.window_start))
        if row.is_completed and row.claimed_at is None:
            claimable.append(_claimable_entry(row))
        elif (
            instance.status == InstanceStatus.OPEN.value
            and row.claimed_at is None
            and instance.contains(today)
        ):
            active.append(_active_entry(row))

    definitions = (
        await db.execute(
            select(ChallengeDefinition)
            .where(
                ChallengeDefinition.status == "active",
                ChallengeDefinition.kind == ChallengeKind.PERIODIC.value,
            )
            .order_by(ChallengeDefinition.sort_order, ChallengeDefinition.code)
        )
    ).scalars().all()

    upcoming: list[dict[str, Any]] = []
    for definition in definitions:
        try:
            start, end = next_period_window(definition.period, today)
        except UnknownPeriodError:
            continue
        if (definition.code, start) in enrolled_windows:
            continue
        upcoming.append({
            "code": definition.code,
            "title": definition.title,
            "kind": definition.kind,
            "period": definition.period,
            "windowStart": start.isoformat(),
            "windowEnd": end.isoformat(),
        })

    return {
        "ok": True,
        "currentWeek": {"start": week_start.isoformat(), "end": week_end.isoformat()},
        "active": active,
        "claimable": claimable,
        "upcoming": upcoming,
    }


async def get_current_challenge_summary(db: AsyncSession, user_id: int, today: date) -> dict[str, Any] | None:
    """Summary of the primary challenge for today (dashboard card)."""
    rows = (
        await db.execute(
            select(UserChallengeProgress)
            .join(ChallengeInstance, UserChallengeProgress.instance_id == ChallengeInstance.id)
            .where(
                UserChallengeProgress.user_id == user_id,
                ChallengeInstance.window_start <= today,
                or_(ChallengeInstance.window_end.is_(None), ChallengeInstance.window_end >= today),
            )
            .order_by(ChallengeInstance.id)
        )
    ).scalars().unique().all()

    updates = []
    for row in rows:
        definition = row.instance.definition
        challenge_type = ChallengeType(definition.challenge_type)
        progress = load_progress(challenge_type, row.progress)
        updates.append(ChallengeUpdate(
            instance_id=row.instance_id,
            code=definition.code,
            challenge_type=challenge_type,
            period=definition.period,
            current=progress.current,
            target=definition.target,
            is_completed=row.is_completed,
            newly_completed=False,
        ))
    primary = pick_primary(updates)
    return primary.summary() if primary else None
