"""Request bodies for practice endpoints."""

from __future__ import annotations

from pydantic import Field

from riyaz.schemas import CamelModel


class PracticeLogRequest(CamelModel):
    # range and presence are validated by the service (MIN_DURATION, MISSING_IDEMPOTENCY_KEY)
    minutes: int | None = None
    note: str | None = Field(default=None, max_length=1000)
    idempotency_key: str | None = Field(default=None, max_length=128)
