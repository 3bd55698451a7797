"""Typed challenge progress: storage shape, advancing and completion."""

from datetime import date

import pytest

from riyaz.challenges.rules import (
    ChallengeType,
    DaysInPeriodProgress,
    PracticeContext,
    StreakProgress,
    XpTargetProgress,
    advance,
    dump_progress,
    empty_progress,
    is_complete,
    load_progress,
)

SAT = date(2026, 10, 17)
SUN = date(2026, 10, 18)


class TestStorageShape:
    @pytest.mark.parametrize(
        ("challenge_type", "cls"),
        [
            (ChallengeType.DAYS_IN_PERIOD, DaysInPeriodProgress),
            (ChallengeType.STREAK, StreakProgress),
            (ChallengeType.XP_TARGET, XpTargetProgress),
        ],
    )
    def test_empty_progress_per_type(self, challenge_type, cls):
        progress = empty_progress(challenge_type)
        assert isinstance(progress, cls)
        assert progress.current == 0

    def test_missing_blob_is_empty(self):
        assert load_progress(ChallengeType.DAYS_IN_PERIOD, None).current == 0
        assert load_progress(ChallengeType.XP_TARGET, {}).current == 0

    def test_days_in_period_keeps_days_done_for_the_app(self):
        raw = dump_progress(DaysInPeriodProgress({SUN, SAT}))
        assert raw == {
            "type": "days_in_period",
            "markedDates": ["2026-10-17", "2026-10-18"],
            "daysDone": 2,
        }
        assert load_progress(ChallengeType.DAYS_IN_PERIOD, raw).marked_dates == {SAT, SUN}

    def test_streak_and_xp_shapes(self):
        assert dump_progress(StreakProgress(4)) == {"type": "streak", "count": 4}
        assert dump_progress(XpTargetProgress(120)) == {"type": "xp_target", "accumulated": 120}


class TestAdvance:
    def test_days_in_period_counts_distinct_days(self):
        progress = DaysInPeriodProgress()
        progress = advance(progress, PracticeContext(SAT, 10, 1))
        progress = advance(progress, PracticeContext(SAT, 20, 1))
        progress = advance(progress, PracticeContext(SUN, 10, 2))
        assert progress.current == 2

    def test_streak_follows_current_streak(self):
        progress = advance(StreakProgress(2), PracticeContext(SUN, 10, 3))
        assert progress.current == 3
        # a broken streak resets the challenge count as well
        assert advance(progress, PracticeContext(date(2026, 10, 21), 10, 1)).current == 1

    def test_xp_target_accumulates(self):
        progress = advance(XpTargetProgress(40), PracticeContext(SAT, 30, 1))
        assert progress.current == 70

    def test_xp_target_takes_the_window_total_when_known(self):
        # the window total already includes XP from reward claims and invites
        progress = advance(XpTargetProgress(40), PracticeContext(SAT, 30, 1, window_xp=150))
        assert progress.current == 150


class TestIsComplete:
    def test_reaching_target(self):
        assert is_complete(StreakProgress(7), 7)
        assert not is_complete(StreakProgress(6), 7)

    def test_zero_target_never_completes(self):
        assert not is_complete(XpTargetProgress(100), 0)
