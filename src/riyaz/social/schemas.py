"""Request bodies for social endpoints."""

from __future__ import annotations

from pydantic import Field

from riyaz.schemas import CamelModel


class AcceptInviteRequest(CamelModel):
    code: str = Field(default="", max_length=32)
