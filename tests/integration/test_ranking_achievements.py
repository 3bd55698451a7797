"""Global XP ranking and the achievements screen."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import at
from riyaz.db.models import ProgressCounters
from riyaz.gamification.achievements_service import get_achievements
from riyaz.gamification.medal_service import grant_medal
from riyaz.gamification.ranking_service import get_global_ranking
from riyaz.practice.service import log_practice

pytestmark = pytest.mark.asyncio


async def _give_xp(db, user_id: int, xp: int) -> None:
    db.add(ProgressCounters(user_id=user_id, total_xp=xp, current_streak=0, best_streak=0))
    await db.commit()


class TestGlobalRanking:
    async def test_ranking_around_user(self, db_session, make_profile):
        profiles = [await make_profile() for _ in range(7)]
        for profile, xp in zip(profiles, [700, 600, 500, 400, 300, 200, 100]):
            await _give_xp(db_session, profile.id, xp)
        me = profiles[4]

        ranking = await get_global_ranking(db_session, me.id)
        assert ranking["ok"] is True
        assert ranking["userRank"] == 5
        assert ranking["userXp"] == 300
        assert ranking["totalUsers"] == 7
        assert [e["xp"] for e in ranking["topThree"]] == [700, 600, 500]
        assert [e["rank"] for e in ranking["surrounding"]] == [3, 4, 5, 6, 7]
        assert [e["isCurrentUser"] for e in ranking["surrounding"]] == [False, False, True, False, False]

    async def test_users_without_xp_rank_last_by_id(self, db_session, make_profile):
        active = await make_profile()
        idle_a = await make_profile()
        idle_b = await make_profile()
        await _give_xp(db_session, active.id, 50)

        ranking = await get_global_ranking(db_session, idle_b.id)
        assert ranking["userRank"] == 3
        assert ranking["userXp"] == 0
        assert [e["userId"] for e in ranking["topThree"]] == [active.id, idle_a.id, idle_b.id]

    async def test_ties_are_broken_by_user_id(self, db_session, make_profile):
        a = await make_profile()
        b = await make_profile()
        await _give_xp(db_session, a.id, 100)
        await _give_xp(db_session, b.id, 100)
        assert (await get_global_ranking(db_session, a.id))["userRank"] == 1
        assert (await get_global_ranking(db_session, b.id))["userRank"] == 2


class TestAchievements:
    async def test_new_user(self, db_session, make_profile):
        profile = await make_profile()
        result = await get_achievements(db_session, profile.id, at(0).date())
        assert result["level"] == {
            "current": 1,
            "title": "Listener",
            "xpTotal": 0,
            "xpForNextLevel": 100,
            "progressPercent": 0,
        }
        assert result["streak"] == {"current": 0, "best": 0}
        assert result["league"] is None
        assert all(not b["earned"] for b in result["badges"])
        assert {b["code"] for b in result["badges"]} >= {"league-first", "weekly-five", "streak-7"}

    async def test_earned_badge_and_progress(self, db_session, make_profile):
        profile = await make_profile()
        await log_practice(db_session, None, profile, 240, None, "big-day", now=at(0))
        await grant_medal(db_session, profile.id, "streak-7")
        await db_session.commit()

        result = await get_achievements(db_session, profile.id, at(0).date())
        assert result["level"]["xpTotal"] == 160
        assert result["level"]["current"] == 2
        assert result["streak"] == {"current": 1, "best": 1}
        earned = [b["code"] for b in result["badges"] if b["earned"]]
        assert earned == ["streak-7"]

    async def test_unknown_medal_code_is_ignored(self, db_session, make_profile):
        profile = await make_profile()
        assert await grant_medal(db_session, profile.id, "no-such-medal") is False
        assert await grant_medal(db_session, profile.id, "streak-7") is True
        assert await grant_medal(db_session, profile.id, "streak-7") is False
        await db_session.commit()
