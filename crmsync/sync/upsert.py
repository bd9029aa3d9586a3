"""Dialect-aware ``INSERT ... ON CONFLICT`` helpers.

The unique constraint in the database is the source of truth for
deduplication; these helpers only report whether a row was actually
inserted.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def _insert_for(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT is not supported for dialect {dialect!r}")


async def insert_ignore(
    db: AsyncSession,
    model,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
) -> uuid.UUID | None:
    """Insert unless the conflict key exists. Returns the new id, or None on conflict."""
    stmt = (
        _insert_for(db, model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=list(conflict_columns))
        .returning(model.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_update(
    db: AsyncSession,
    model,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Iterable[str],
    coalesce_columns: Iterable[str] = (),
) -> uuid.UUID:
    """Insert or update on conflict. Returns the row id.

    ``coalesce_columns`` keep their stored value when the incoming one is NULL.
    """
    stmt = _insert_for(db, model).values(**values)
    table = model.__table__
    set_: dict[str, Any] = {}
    for name in update_columns:
        set_[name] = stmt.excluded[name]
    for name in coalesce_columns:
        set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
    if "updated_at" in table.c:
        set_["updated_at"] = func.now()

    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=set_,
    ).returning(model.id)
    result = await db.execute(stmt)
    return result.scalar_one()
