"""Notification queueing (inside the transaction) and pub/sub fan-out (after commit)."""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import utcnow
from riyaz.db.dialect import insert_ignore
from riyaz.db.models import Notification

logger = logging.getLogger(__name__)


async def queue_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    subtype: str,
    title: str,
    description: str = "",
    payload: dict[str, Any] | None = None,
    dedupe_key: str | None = None,
) -> bool:
    """Queue a notification row. With a dedupe_key, re-queueing is a no-op.

    Returns True if a row was inserted.
    """
    inserted = await insert_ignore(
        db,
        Notification,
        {
            "user_id": user_id,
            "type": type_,
            "subtype": subtype,
            "title": title,
            "description": description,
            "payload": payload or {},
            "dedupe_key": dedupe_key,
            "status": "queued",
            "is_read": False,
            "created_at": utcnow(),
        },
        index_elements=["dedupe_key"] if dedupe_key else None,
    )
    return inserted > 0


async def publish_events(redis: object, events: list[tuple[str, dict[str, Any]]]) -> None:
    """Publish (channel, payload) pairs to Redis pub/sub. Never raises."""
    if redis is None:
        return
    for channel, payload in events:
        try:
            await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
        except Exception:
            logger.warning("Failed to publish %s event", channel, exc_info=True)
