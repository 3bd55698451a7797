"""Medal and challenge catalogue seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.dialect import insert_ignore
from riyaz.db.models import ChallengeDefinition, Medal

logger = logging.getLogger(__name__)

MEDAL_SEED_DATA: list[dict] = [
    {"code": "league-first", "title": "League Champion", "description": "Finish a weekly league in 1st place"},
    {"code": "league-second", "title": "League Runner-up", "description": "Finish a weekly league in 2nd place"},
    {"code": "league-third", "title": "League Podium", "description": "Finish a weekly league in 3rd place"},
    {"code": "weekly-five", "title": "Five Day Week", "description": "Practice on 5 days of one week"},
    {"code": "streak-7", "title": "Seven Day Streak", "description": "Practice 7 days in a row"},
    {"code": "streak-30", "title": "Thirty Day Streak", "description": "Practice 30 days in a row"},
    {"code": "monthly-xp", "title": "Monthly Grinder", "description": "Earn 600 XP within one month"},
]

CHALLENGE_SEED_DATA: list[dict] = [
    {
        "code": "weekly-5-days",
        "title": "Practice 5 days this week",
        "kind": "periodic",
        "challenge_type": "days_in_period",
        "period": "week",
        "conditions": {"target": 5},
        "reward": {"xp": 50, "badge_code": "weekly-five"},
        "auto_enroll": True,
        "sort_order": 1,
    },
    {
        "code": "monthly-600-xp",
        "title": "Earn 600 XP this month",
        "kind": "periodic",
        "challenge_type": "xp_target",
        "period": "month",
        "conditions": {"target": 600},
        "reward": {"xp": 100, "badge_code": "monthly-xp"},
        "auto_enroll": True,
        "sort_order": 2,
    },
    {
        "code": "streak-7",
        "title": "Keep a 7 day streak",
        "kind": "rolling",
        "challenge_type": "streak",
        "period": None,
        "conditions": {"target": 7},
        "reward": {"xp": 70, "badge_code": "streak-7"},
        "auto_enroll": True,
        "sort_order": 3,
    },
    {
        "code": "streak-30",
        "title": "Keep a 30 day streak",
        "kind": "rolling",
        "challenge_type": "streak",
        "period": None,
        "conditions": {"target": 30},
        "reward": {"xp": 300, "badge_code": "streak-30"},
        "auto_enroll": False,
        "sort_order": 4,
    },
]


async def seed_catalogue(db: AsyncSession) -> int:
    """Insert missing medals and challenge definitions. Existing rows are left
    untouched so admin edits survive restarts. Returns rows inserted."""
    seeded = 0
    for medal in MEDAL_SEED_DATA:
        seeded += await insert_ignore(db, Medal, {"kind": "permanent", **medal}, index_elements=["code"])
    for definition in CHALLENGE_SEED_DATA:
        seeded += await insert_ignore(
            db, ChallengeDefinition, {"status": "active", **definition}, index_elements=["code"]
        )
    await db.commit()
    logger.info("Seeded %d catalogue rows", seeded)
    return seeded
