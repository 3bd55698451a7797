"""Streak transitions on the local calendar."""

from datetime import date

from riyaz.db.models import ProgressCounters
from riyaz.gamification.streak_service import effective_streak, next_streak


class TestNextStreak:
    def test_first_practice_ever(self):
        assert next_streak(0, first_of_day=True, practiced_day_before=False) == 1

    def test_consecutive_day_extends(self):
        assert next_streak(3, first_of_day=True, practiced_day_before=True) == 4

    def test_gap_resets_to_one(self):
        assert next_streak(9, first_of_day=True, practiced_day_before=False) == 1

    def test_second_log_same_day_does_not_move(self):
        assert next_streak(4, first_of_day=False, practiced_day_before=True) == 4

    def test_second_log_same_day_keeps_at_least_one(self):
        assert next_streak(0, first_of_day=False, practiced_day_before=False) == 1


class TestEffectiveStreak:
    def _counters(self, streak: int, last: date | None) -> ProgressCounters:
        return ProgressCounters(user_id=1, total_xp=0, current_streak=streak, best_streak=streak, last_active_date=last)

    def test_never_practiced(self):
        assert effective_streak(self._counters(0, None), date(2026, 10, 17)) == 0

    def test_practiced_today(self):
        assert effective_streak(self._counters(5, date(2026, 10, 17)), date(2026, 10, 17)) == 5

    def test_practiced_yesterday_still_alive(self):
        assert effective_streak(self._counters(5, date(2026, 10, 16)), date(2026, 10, 17)) == 5

    def test_missed_a_full_day(self):
        assert effective_streak(self._counters(5, date(2026, 10, 15)), date(2026, 10, 17)) == 0
