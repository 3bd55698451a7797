"""End-of-week league finalization: ranking, podium medals, notifications, re-entrancy."""

from __future__ import annotations

import uuid
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import NOW, at
from riyaz.db.models import LeagueMember, Notification, WeeklyLeague
from riyaz.gamification.medal_service import get_user_medals
from riyaz.leagues.finalize import finalize_weekly_leagues
from riyaz.leagues.service import join_weekly_league
from riyaz.practice.service import log_practice

pytestmark = pytest.mark.asyncio

PREMIUM = {"is_premium": True, "subscription_expires_at": NOW + timedelta(days=30)}
AFTER_WEEK = date(2026, 10, 24)


class FakeRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


async def _log(db, profile, minutes, now):
    result = await log_practice(db, None, profile, minutes, None, uuid.uuid4().hex, now=now)
    assert result["ok"]
    return result


async def _members(db, league_id: int) -> list[LeagueMember]:
    result = await db.execute(
        select(LeagueMember)
        .where(LeagueMember.league_id == league_id)
        .order_by(LeagueMember.rank)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def four_player_league(db_session, make_profile):
    players = [await make_profile(**PREMIUM) for _ in range(4)]
    league_id = None
    for p in players:
        league_id = (await join_weekly_league(db_session, p, now=NOW))["leagueId"]

    first, second, third, fourth = players
    await _log(db_session, first, 90, at(0, hours=1))   # 60 XP
    await _log(db_session, third, 60, at(1, hours=1))   # 40 XP, reached first
    await _log(db_session, second, 60, at(1, hours=2))  # 40 XP, reached later
    await _log(db_session, fourth, 15, at(2))           # 10 XP
    return league_id, players


class TestFinalize:
    async def test_ranks_and_archives(self, db_session, four_player_league):
        league_id, (first, second, third, fourth) = four_player_league

        summary = await finalize_weekly_leagues(db_session, today=AFTER_WEEK)
        assert summary == {"ok": True, "finalized": [league_id], "errors": []}

        league = await db_session.get(WeeklyLeague, league_id, populate_existing=True)
        assert league.status == "archived"
        assert league.finalized_at is not None

        ranked = await _members(db_session, league_id)
        assert [m.user_id for m in ranked] == [first.id, third.id, second.id, fourth.id]
        assert [m.rank for m in ranked] == [1, 2, 3, 4]

    async def test_podium_medals(self, db_session, four_player_league):
        _, (first, second, third, fourth) = four_player_league
        await finalize_weekly_leagues(db_session, today=AFTER_WEEK)

        async def codes(user) -> list[str]:
            return [um.medal.code for um in await get_user_medals(db_session, user.id)]

        assert await codes(first) == ["league-first"]
        assert await codes(third) == ["league-second"]
        assert await codes(second) == ["league-third"]
        assert await codes(fourth) == []

    async def test_one_result_notification_per_member(self, db_session, four_player_league):
        league_id, players = four_player_league
        redis = FakeRedis()
        await finalize_weekly_leagues(db_session, today=AFTER_WEEK, redis=redis)

        notifications = (
            await db_session.execute(select(Notification).where(Notification.subtype == "league_result"))
        ).scalars().all()
        assert len(notifications) == 4
        assert {n.dedupe_key for n in notifications} == {f"league_result:{league_id}:{p.id}" for p in players}
        assert [channel for channel, _ in redis.published] == ["league_result"] * 4

    async def test_rerun_is_a_no_op(self, db_session, four_player_league):
        league_id, players = four_player_league
        await finalize_weekly_leagues(db_session, today=AFTER_WEEK)
        again = await finalize_weekly_leagues(db_session, today=AFTER_WEEK)
        assert again == {"ok": True, "finalized": [], "errors": []}

        notifications = (
            await db_session.execute(select(Notification).where(Notification.subtype == "league_result"))
        ).scalars().all()
        assert len(notifications) == len(players)

    async def test_running_week_is_left_open(self, db_session, four_player_league):
        league_id, _ = four_player_league
        summary = await finalize_weekly_leagues(db_session, today=date(2026, 10, 23))
        assert summary["finalized"] == []
        league = await db_session.get(WeeklyLeague, league_id, populate_existing=True)
        assert league.status == "open"

    async def test_locked_league_is_finalized(self, db_session, four_player_league):
        league_id, _ = four_player_league
        league = await db_session.get(WeeklyLeague, league_id)
        league.status = "locked"
        await db_session.commit()

        summary = await finalize_weekly_leagues(db_session, today=AFTER_WEEK)
        assert summary["finalized"] == [league_id]

    async def test_practice_after_finalization_skips_league(self, db_session, four_player_league):
        league_id, (first, *_rest) = four_player_league
        await finalize_weekly_leagues(db_session, today=AFTER_WEEK)

        # a late submission still dated inside the finished week
        result = await log_practice(db_session, None, first, 30, None, "late", now=at(6))
        assert result["ok"] is True
        assert result["leagueUpdateSkipped"] is True
        assert result["league"]["rank"] == 1
