"""Dialect-aware INSERT ... ON CONFLICT.

PostgreSQL and SQLite share the ``on_conflict_do_nothing`` /
``on_conflict_do_update`` API, so services build one statement and let the
session's dialect pick the construct.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, model: Any) -> Any:
    """Return an INSERT for ``model`` supporting ON CONFLICT on this session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    msg = f"Conditional inserts are not supported on {dialect}"
    raise NotImplementedError(msg)
