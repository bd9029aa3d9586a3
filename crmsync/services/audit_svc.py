"""Sync audit trail.

Jobs report progress through a ``SyncAudit``. The database-backed
implementation writes ``SyncLog`` rows through its own session so that a
rollback in the job's session never loses audit entries, and an audit
failure never reaches the job.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.aasp import SyncLog

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class SyncAudit(Protocol):
    async def record(self, level: str, event: str, payload: dict[str, Any] | None = None) -> None:
        ...


class NullSyncAudit:
    """Logs to the module logger only."""

    def __init__(self, integration: str = "sync") -> None:
        self.integration = integration

    async def record(self, level: str, event: str, payload: dict[str, Any] | None = None) -> None:
        logger.log(
            _LEVELS.get(level, logging.INFO),
            "%s.%s %s", self.integration, event, payload or {},
            extra={"event": f"{self.integration}.{event}"},
        )


class DatabaseSyncAudit(NullSyncAudit):
    """Persists audit entries as ``SyncLog`` rows, best-effort."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        organization_id: uuid.UUID,
        integration: str = "aasp",
    ) -> None:
        super().__init__(integration)
        self._session_factory = session_factory
        self.organization_id = organization_id

    async def record(self, level: str, event: str, payload: dict[str, Any] | None = None) -> None:
        await super().record(level, event, payload)
        try:
            async with self._session_factory() as session:
                session.add(
                    SyncLog(
                        organization_id=self.organization_id,
                        integration=self.integration,
                        level=level,
                        event=event,
                        payload=payload or {},
                    )
                )
                await session.commit()
        except Exception:
            logger.debug("Dropping %s audit entry %s", self.integration, event, exc_info=True)


async def list_sync_logs(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    integration: str = "aasp",
    limit: int = 200,
) -> list[SyncLog]:
    stmt = (
        select(SyncLog)
        .where(SyncLog.organization_id == organization_id, SyncLog.integration == integration)
        .order_by(SyncLog.created_at.desc())
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())


async def clear_sync_logs(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    integration: str = "aasp",
) -> int:
    result = await db.execute(
        delete(SyncLog).where(
            SyncLog.organization_id == organization_id,
            SyncLog.integration == integration,
        )
    )
    await db.commit()
    return result.rowcount or 0
