"""Dialect-aware statements: ON CONFLICT DO NOTHING and per-user advisory locks.

Production runs on PostgreSQL; the test suite runs on SQLite. Both dialects
support ``INSERT ... ON CONFLICT DO NOTHING``; only PostgreSQL has advisory
locks (SQLite already serializes writers).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from riyaz.db.base import Base


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


async def insert_ignore(
    db: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    index_elements: list[str] | None = None,
) -> int:
    """Insert a row unless it collides with a unique constraint. Returns rowcount."""
    insert_fn = pg_insert if dialect_name(db) == "postgresql" else sqlite_insert
    stmt = insert_fn(model.__table__).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = await db.execute(stmt)
    return result.rowcount or 0


async def lock_user(db: AsyncSession, user_id: int, scope: str = "practice") -> None:
    """Take a transaction-scoped advisory lock for one user (PostgreSQL only)."""
    if dialect_name(db) != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
        {"lock_key": f"{scope}:{user_id}"},
    )
