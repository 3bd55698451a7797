"""Challenge types, typed progress and completion rules.

Progress is stored as JSON on ``user_challenge_progress.progress``; the
``load_progress``/``dump_progress`` pair is the only place that knows the
storage shape. Every function dispatching on the progress variant ends in
``assert_never`` so a new ``ChallengeType`` cannot be silently ignored.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Union, assert_never


class ChallengeType(str, enum.Enum):
    DAYS_IN_PERIOD = "days_in_period"
    STREAK = "streak"
    XP_TARGET = "xp_target"


class ChallengeKind(str, enum.Enum):
    PERIODIC = "periodic"
    ROLLING = "rolling"


class InstanceStatus(str, enum.Enum):
    OPEN = "open"
    LOCKED = "locked"
    DONE = "done"


@dataclass
class DaysInPeriodProgress:
    marked_dates: set[date] = field(default_factory=set)

    @property
    def current(self) -> int:
        return len(self.marked_dates)


@dataclass
class StreakProgress:
    count: int = 0

    @property
    def current(self) -> int:
        return self.count


@dataclass
class XpTargetProgress:
    accumulated: int = 0

    @property
    def current(self) -> int:
        return self.accumulated


Progress = Union[DaysInPeriodProgress, StreakProgress, XpTargetProgress]


@dataclass(frozen=True)
class PracticeContext:
    """What a single logged practice contributes to challenge progress."""

    local_date: date
    xp_gained: int
    current_streak: int
    # ledger XP dated inside the instance window, this practice included
    window_xp: int | None = None


def empty_progress(challenge_type: ChallengeType) -> Progress:
    if challenge_type is ChallengeType.DAYS_IN_PERIOD:
        return DaysInPeriodProgress()
    if challenge_type is ChallengeType.STREAK:
        return StreakProgress()
    if challenge_type is ChallengeType.XP_TARGET:
        return XpTargetProgress()
    assert_never(challenge_type)


def load_progress(challenge_type: ChallengeType, raw: dict[str, Any] | None) -> Progress:
    """Build the typed progress for a stored JSON blob (missing keys = empty)."""
    raw = raw or {}
    if challenge_type is ChallengeType.DAYS_IN_PERIOD:
        return DaysInPeriodProgress({date.fromisoformat(d) for d in raw.get("markedDates", [])})
    if challenge_type is ChallengeType.STREAK:
        return StreakProgress(int(raw.get("count", 0)))
    if challenge_type is ChallengeType.XP_TARGET:
        return XpTargetProgress(int(raw.get("accumulated", 0)))
    assert_never(challenge_type)


def dump_progress(progress: Progress) -> dict[str, Any]:
    """Storage shape. ``daysDone`` is kept for the days-in-period variant since
    the app reads it directly."""
    if isinstance(progress, DaysInPeriodProgress):
        marked = sorted(progress.marked_dates)
        return {
            "type": ChallengeType.DAYS_IN_PERIOD.value,
            "markedDates": [d.isoformat() for d in marked],
            "daysDone": len(marked),
        }
    if isinstance(progress, StreakProgress):
        return {"type": ChallengeType.STREAK.value, "count": progress.count}
    if isinstance(progress, XpTargetProgress):
        return {"type": ChallengeType.XP_TARGET.value, "accumulated": progress.accumulated}
    assert_never(progress)


def advance(progress: Progress, ctx: PracticeContext) -> Progress:
    """Progress after one practice inside the instance window."""
    if isinstance(progress, DaysInPeriodProgress):
        return DaysInPeriodProgress(progress.marked_dates | {ctx.local_date})
    if isinstance(progress, StreakProgress):
        return StreakProgress(ctx.current_streak)
    if isinstance(progress, XpTargetProgress):
        if ctx.window_xp is not None:
            return XpTargetProgress(ctx.window_xp)
        return XpTargetProgress(progress.accumulated + ctx.xp_gained)
    assert_never(progress)


def is_complete(progress: Progress, target: int) -> bool:
    return target > 0 and progress.current >= target
