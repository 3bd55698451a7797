"""Challenge progress, completion, reward claims and the challenges view."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from conftest import NOW, at
from riyaz.challenges.rules import InstanceStatus
from riyaz.challenges.service import claim_reward, get_challenges_view
from riyaz.db.models import ChallengeInstance, Notification, ProgressCounters, UserChallengeProgress
from riyaz.gamification.medal_service import get_user_medals
from riyaz.gamification.xp_service import get_ledger_total
from riyaz.practice.service import log_practice
from riyaz.social.invite_service import accept_invite

pytestmark = pytest.mark.asyncio


async def _log(db, profile, minutes=15, now=NOW):
    return await log_practice(db, None, profile, minutes, None, uuid.uuid4().hex, now=now)


async def _instance(db, user_id: int, code: str) -> ChallengeInstance:
    result = await db.execute(
        select(ChallengeInstance)
        .where(ChallengeInstance.user_id == user_id, ChallengeInstance.challenge_code == code)
        .order_by(ChallengeInstance.window_start.desc())
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _progress(db, instance_id: int) -> UserChallengeProgress:
    result = await db.execute(
        select(UserChallengeProgress)
        .where(UserChallengeProgress.instance_id == instance_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().unique().one()


class TestWeeklyDaysChallenge:
    async def test_completes_on_fifth_distinct_day(self, db_session, make_profile):
        profile = await make_profile()
        results = [await _log(db_session, profile, now=at(day)) for day in range(5)]

        assert [r["challenge"]["daysDone"] for r in results] == [1, 2, 3, 4, 5]
        assert results[3]["challenge"]["isCompleted"] is False
        assert results[4]["challenge"] == {"daysDone": 5, "target": 5, "isCompleted": True}

        instance = await _instance(db_session, profile.id, "weekly-5-days")
        assert instance.status == InstanceStatus.DONE.value
        progress = await _progress(db_session, instance.id)
        assert progress.is_completed and progress.is_claimable
        assert progress.claimed_at is None
        assert progress.progress["daysDone"] == 5

        notifications = (
            await db_session.execute(
                select(Notification).where(
                    Notification.user_id == profile.id, Notification.subtype == "challenge_completed"
                )
            )
        ).scalars().all()
        assert [n.dedupe_key for n in notifications] == [f"challenge_completed:{instance.id}"]

    async def test_same_day_twice_counts_once(self, db_session, make_profile):
        profile = await make_profile()
        await _log(db_session, profile, now=at(0))
        second = await _log(db_session, profile, now=at(0, hours=3))
        assert second["challenge"]["daysDone"] == 1

    async def test_practice_in_next_week_starts_a_new_instance(self, db_session, make_profile):
        profile = await make_profile()
        await _log(db_session, profile, now=at(5))  # Thursday
        await _log(db_session, profile, now=at(6))  # Friday
        saturday = await _log(db_session, profile, now=at(7))
        assert saturday["challenge"]["daysDone"] == 1

        instance = await _instance(db_session, profile.id, "weekly-5-days")
        assert instance.window_start.isoformat() == "2026-10-24"

    async def test_completed_instance_stops_advancing(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(6):
            await _log(db_session, profile, now=at(day))
        instance = await _instance(db_session, profile.id, "weekly-5-days")
        progress = await _progress(db_session, instance.id)
        assert progress.progress["daysDone"] == 5


class TestRollingStreakChallenge:
    async def test_seven_day_streak_completes(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(7):
            await _log(db_session, profile, now=at(day))

        instance = await _instance(db_session, profile.id, "streak-7")
        assert instance.window_end is None
        progress = await _progress(db_session, instance.id)
        assert progress.is_completed
        assert progress.progress == {"type": "streak", "count": 7}

    async def test_finished_rolling_challenge_is_not_reopened(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(8):
            await _log(db_session, profile, now=at(day))

        instances = (
            await db_session.execute(
                select(ChallengeInstance).where(
                    ChallengeInstance.user_id == profile.id, ChallengeInstance.challenge_code == "streak-7"
                )
            )
        ).scalars().all()
        assert len(instances) == 1

    async def test_not_auto_enrolled_definition_is_skipped(self, db_session, make_profile):
        profile = await make_profile()
        await _log(db_session, profile)
        assert await _instance(db_session, profile.id, "streak-30") is None


class TestMonthlyXpChallenge:
    async def test_accumulates_xp_in_the_month(self, db_session, make_profile):
        profile = await make_profile()
        await _log(db_session, profile, minutes=240, now=at(0))
        await _log(db_session, profile, minutes=60, now=at(1))
        instance = await _instance(db_session, profile.id, "monthly-600-xp")
        assert instance.window_start.isoformat() == "2026-10-01"
        assert instance.window_end.isoformat() == "2026-10-31"
        progress = await _progress(db_session, instance.id)
        assert progress.progress["accumulated"] == 160 + 40
        assert not progress.is_completed

    async def test_reward_claims_count_toward_the_month(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(5):
            await _log(db_session, profile, minutes=60, now=at(day))
        weekly = await _instance(db_session, profile.id, "weekly-5-days")
        monthly = await _instance(db_session, profile.id, "monthly-600-xp")
        assert (await _progress(db_session, monthly.id)).progress["accumulated"] == 200

        claimed = await claim_reward(db_session, weekly.id, profile.id, now=at(4, hours=1))
        assert claimed["xpAwarded"] == 50
        assert (await _progress(db_session, monthly.id)).progress["accumulated"] == 250

        await _log(db_session, profile, minutes=15, now=at(5))
        assert (await _progress(db_session, monthly.id)).progress["accumulated"] == 260
        assert await get_ledger_total(db_session, profile.id) == 260

    async def test_invite_xp_can_complete_the_month(self, db_session, make_profile):
        inviter = await make_profile(invite_code="SANTUR")
        invitee = await make_profile()
        for day in range(3):
            await _log(db_session, inviter, minutes=240, now=at(day))
        await _log(db_session, inviter, minutes=45, now=at(3))
        monthly = await _instance(db_session, inviter.id, "monthly-600-xp")
        assert (await _progress(db_session, monthly.id)).progress["accumulated"] == 510

        accepted = await accept_invite(db_session, invitee, "SANTUR", now=at(3, hours=1))
        assert accepted["ok"] is True

        progress = await _progress(db_session, monthly.id)
        assert progress.progress["accumulated"] == 610
        assert progress.is_completed is True
        assert progress.is_claimable is True
        monthly = await _instance(db_session, inviter.id, "monthly-600-xp")
        assert monthly.status == InstanceStatus.DONE.value


class TestClaimReward:
    async def _complete_weekly(self, db, profile) -> int:
        for day in range(5):
            await _log(db, profile, now=at(day))
        return (await _instance(db, profile.id, "weekly-5-days")).id

    async def test_claim_grants_xp_and_medal_once(self, db_session, make_profile):
        profile = await make_profile()
        instance_id = await self._complete_weekly(db_session, profile)

        first = await claim_reward(db_session, instance_id, profile.id, now=at(4, hours=1))
        assert first["ok"] is True
        assert first["alreadyClaimed"] is False
        assert first["xpAwarded"] == 50
        assert first["badgeGranted"] is True

        second = await claim_reward(db_session, instance_id, profile.id, now=at(4, hours=2))
        assert second["ok"] is True
        assert second["alreadyClaimed"] is True
        assert second["claimedAt"] == first["claimedAt"]

        counters = await db_session.get(ProgressCounters, profile.id, populate_existing=True)
        assert counters.total_xp == 5 * 10 + 50
        assert counters.total_xp == await get_ledger_total(db_session, profile.id)

        medals = await get_user_medals(db_session, profile.id)
        assert [m.medal.code for m in medals] == ["weekly-five"]

        progress = await _progress(db_session, instance_id)
        assert progress.claimed_at is not None
        assert progress.is_claimable is False

    async def test_not_completed(self, db_session, make_profile):
        profile = await make_profile()
        await _log(db_session, profile)
        instance_id = (await _instance(db_session, profile.id, "monthly-600-xp")).id

        result = await claim_reward(db_session, instance_id, profile.id, now=NOW)
        assert result["ok"] is False
        assert result["code"] == "NOT_COMPLETED"

    async def test_unknown_instance(self, db_session, make_profile):
        profile = await make_profile()
        result = await claim_reward(db_session, 987654, profile.id, now=NOW)
        assert result["code"] == "NOT_FOUND"

    async def test_cannot_claim_someone_elses_instance(self, db_session, make_profile):
        owner = await make_profile()
        other = await make_profile()
        instance_id = await self._complete_weekly(db_session, owner)

        result = await claim_reward(db_session, instance_id, other.id, now=NOW)
        assert result["code"] == "NOT_FOUND"
        progress = await _progress(db_session, instance_id)
        assert progress.claimed_at is None


class TestChallengesView:
    async def test_partitions_active_claimable_upcoming(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(5):
            await _log(db_session, profile, now=at(day))

        view = await get_challenges_view(db_session, profile, now=at(4, hours=1))
        assert view["ok"] is True
        assert view["currentWeek"] == {"start": "2026-10-17", "end": "2026-10-23"}

        assert [c["code"] for c in view["claimable"]] == ["weekly-5-days"]
        claimable = view["claimable"][0]
        assert claimable["reward"] == {"xp": 50, "badge_code": "weekly-five", "claimable": True}

        active = {c["code"]: c for c in view["active"]}
        assert set(active) == {"monthly-600-xp", "streak-7"}
        assert active["streak-7"]["current"] == 5
        assert active["streak-7"]["windowEnd"] is None

        upcoming = {c["code"]: c for c in view["upcoming"]}
        assert upcoming["weekly-5-days"]["windowStart"] == "2026-10-24"
        assert upcoming["monthly-600-xp"]["windowStart"] == "2026-11-01"
        assert "streak-7" not in upcoming

    async def test_claimed_instance_leaves_claimable(self, db_session, make_profile):
        profile = await make_profile()
        for day in range(5):
            await _log(db_session, profile, now=at(day))
        instance_id = (await _instance(db_session, profile.id, "weekly-5-days")).id
        await claim_reward(db_session, instance_id, profile.id, now=at(4, hours=1))

        view = await get_challenges_view(db_session, profile, now=at(4, hours=2))
        assert view["claimable"] == []
        assert "weekly-5-days" not in {c["code"] for c in view["active"]}

    async def test_new_user_sees_only_upcoming(self, db_session, make_profile):
        profile = await make_profile()
        view = await get_challenges_view(db_session, profile, now=NOW)
        assert view["active"] == []
        assert view["claimable"] == []
        assert {c["code"] for c in view["upcoming"]} == {"weekly-5-days", "monthly-600-xp"}
