"""Scheduler request/response bodies."""

from __future__ import annotations

from datetime import date
from typing import Any

from riyaz.schemas import CamelModel


class SchedulerRunRequest(CamelModel):
    """Optional override of the date the job runs for (backfills, replays)."""

    today: date | None = None


class RolloverResponse(CamelModel):
    ok: bool
    created: int
    locked: int
    done: int
    errors: list[dict[str, Any]]


class FinalizeResponse(CamelModel):
    ok: bool
    finalized: list[int]
    errors: list[dict[str, Any]]


class AutoJoinResponse(CamelModel):
    ok: bool
    joined: int
    skipped: int
    errors: list[dict[str, Any]]
