"""Tenant driver and background scheduler for the sync jobs.

``run_for_tenants`` runs one job per tenant config, each inside its own
failure boundary and timeout, with bounded concurrency. ``SyncScheduler``
is the in-process loop that fires the ``run_all_*`` entry points on their
intervals or daily hours.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import settings
from .database import async_session_factory
from .models.asaas import AsaasIntegration
from .services import aasp_svc
from .services.audit_svc import DatabaseSyncAudit
from .sync.aasp import sync_aasp
from .sync.asaas import check_payment_statuses, sync_due_payments
from .sync.scheduled_messages import dispatch_due_messages
from .sync.secretary_digest import send_daily_digests

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


@dataclass
class DriverReport:
    name: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: dict[str, Any] = field(default_factory=dict)


def _organization_key(config: Any) -> str:
    return str(config.organization_id)


async def run_for_tenants(
    name: str,
    load_configs: Callable[[], Awaitable[Sequence[Any]]],
    run_one: Callable[[Any], Awaitable[Any]],
    *,
    concurrency: int | None = None,
    tenant_timeout: float | None = None,
    stop_event: asyncio.Event | None = None,
    tenant_key: Callable[[Any], str] = _organization_key,
) -> DriverReport:
    """Run ``run_one`` for every config returned by ``load_configs``.

    A failure, timeout or falsy ``success`` in one tenant is recorded and
    never stops the others. A failure in ``load_configs`` propagates.
    """
    concurrency = max(1, concurrency or settings.driver_concurrency)
    tenant_timeout = tenant_timeout or settings.driver_tenant_timeout_seconds
    report = DriverReport(name=name)

    configs = await load_configs()
    if not configs:
        logger.info("%s: no active configs", name, extra={"event": f"{name}.cron.no_configs"})
        return report

    logger.info(
        "%s: starting for %d tenants", name, len(configs),
        extra={"event": f"{name}.cron.start", "config_count": len(configs)},
    )
    semaphore = asyncio.Semaphore(concurrency)

    async def run_tenant(config: Any) -> None:
        key = tenant_key(config)
        async with semaphore:
            if stop_event is not None and stop_event.is_set():
                report.skipped += 1
                return
            report.processed += 1
            try:
                result = await asyncio.wait_for(run_one(config), timeout=tenant_timeout)
            except asyncio.TimeoutError:
                report.failed += 1
                report.results[key] = f"timed out after {tenant_timeout}s"
                logger.error("%s: tenant %s timed out", name, key)
                return
            except Exception as exc:
                report.failed += 1
                report.results[key] = str(exc) or type(exc).__name__
                logger.exception("%s: tenant %s failed", name, key)
                return

            report.results[key] = result
            if getattr(result, "success", True) is False:
                report.failed += 1
            else:
                report.succeeded += 1

    await asyncio.gather(*(run_tenant(config) for config in configs))

    logger.info(
        "%s: complete processed=%d succeeded=%d failed=%d skipped=%d",
        name, report.processed, report.succeeded, report.failed, report.skipped,
        extra={"event": f"{name}.cron.complete"},
    )
    return report


# -- Entry points ----------------------------------------------------------

async def run_all_aasp(
    session_factory: SessionFactory | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    concurrency: int | None = None,
    tenant_timeout: float | None = None,
    stop_event: asyncio.Event | None = None,
) -> DriverReport:
    """Sync every active AASP config, each tenant in its own session."""
    factory = session_factory or async_session_factory

    async def load():
        async with factory() as db:
            return await aasp_svc.list_active_configs(db)

    async def run_one(config):
        audit = DatabaseSyncAudit(factory, config.organization_id, "aasp")
        async with factory() as db:
            return await sync_aasp(db, config, client=client, audit=audit)

    return await run_for_tenants(
        "aasp", load, run_one,
        concurrency=concurrency, tenant_timeout=tenant_timeout, stop_event=stop_event,
    )


async def _load_asaas_integrations(factory: SessionFactory) -> list[AsaasIntegration]:
    async with factory() as db:
        stmt = select(AsaasIntegration).where(
            AsaasIntegration.is_active.is_(True),
            or_(
                AsaasIntegration.auto_sync_enabled.is_(True),
                AsaasIntegration.auto_sync_enabled.is_(None),
            ),
        ).order_by(AsaasIntegration.created_at)
        return list((await db.execute(stmt)).scalars().all())


async def run_all_asaas_sync(
    session_factory: SessionFactory | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    stop_event: asyncio.Event | None = None,
) -> DriverReport:
    factory = session_factory or async_session_factory

    async def run_one(integration):
        async with factory() as db:
            return await sync_due_payments(db, integration, client=client)

    return await run_for_tenants(
        "asaas", lambda: _load_asaas_integrations(factory), run_one, stop_event=stop_event,
    )


async def run_all_asaas_status_checks(
    session_factory: SessionFactory | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    stop_event: asyncio.Event | None = None,
) -> DriverReport:
    factory = session_factory or async_session_factory

    async def run_one(integration):
        async with factory() as db:
            return await check_payment_statuses(db, integration, client=client)

    return await run_for_tenants(
        "asaas_status", lambda: _load_asaas_integrations(factory), run_one, stop_event=stop_event,
    )


async def run_scheduled_messages(
    session_factory: SessionFactory | None = None,
    *,
    client: httpx.AsyncClient | None = None,
):
    factory = session_factory or async_session_factory
    async with factory() as db:
        return await dispatch_due_messages(db, client=client)


async def run_secretary_digest(
    session_factory: SessionFactory | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> int:
    factory = session_factory or async_session_factory
    async with factory() as db:
        return await send_daily_digests(db, client=client)


# -- Scheduler -------------------------------------------------------------

@dataclass
class ScheduledJob:
    """A job fired every ``every_seconds`` or once a day at ``at_hour`` (local time)."""

    name: str
    func: Callable[[], Awaitable[Any]]
    every_seconds: float | None = None
    at_hour: int | None = None
    last_run: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        if self.at_hour is not None:
            local = now.astimezone(settings.tz)
            if local.hour != self.at_hour:
                return False
            return (
                self.last_run is None
                or self.last_run.astimezone(settings.tz).date() != local.date()
            )
        if self.every_seconds is not None:
            return (
                self.last_run is None
                or (now - self.last_run).total_seconds() >= self.every_seconds
            )
        return False


class SyncScheduler:
    """Polls its jobs and runs the due ones, one at a time."""

    def __init__(
        self,
        jobs: list[ScheduledJob] | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.jobs = jobs if jobs is not None else default_jobs(self._stop_event)
        self.poll_interval = poll_interval or settings.scheduler_poll_interval_seconds

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None or not settings.scheduler_enabled:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="crmsync-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def run_pending(self, now: datetime | None = None) -> list[str]:
        """Run every due job once. Returns the names of the jobs that ran."""
        now = now or datetime.now(timezone.utc)
        ran: list[str] = []
        for job in self.jobs:
            if self._stop_event.is_set():
                break
            if not job.is_due(now):
                continue
            job.last_run = now
            ran.append(job.name)
            try:
                await job.func()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled job %s failed", job.name)
        return ran

    async def run(self) -> None:
        """Run the poll loop in the foreground until stopped or cancelled."""
        while not self._stop_event.is_set():
            try:
                await self.run_pending()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduler loop failed")
            await asyncio.sleep(self.poll_interval)


def default_jobs(stop_event: asyncio.Event | None = None) -> list[ScheduledJob]:
    return [
        ScheduledJob(
            "aasp",
            lambda: run_all_aasp(stop_event=stop_event),
            every_seconds=settings.aasp_sync_interval_seconds,
        ),
        ScheduledJob(
            "scheduled_messages",
            run_scheduled_messages,
            every_seconds=settings.scheduled_messages_interval_seconds,
        ),
        ScheduledJob(
            "secretary_digest",
            run_secretary_digest,
            every_seconds=settings.secretary_digest_interval_seconds,
        ),
        ScheduledJob(
            "asaas_sync",
            lambda: run_all_asaas_sync(stop_event=stop_event),
            at_hour=settings.asaas_sync_hour,
        ),
        ScheduledJob(
            "asaas_status_check",
            lambda: run_all_asaas_status_checks(stop_event=stop_event),
            at_hour=settings.asaas_status_check_hour,
        ),
    ]


sync_scheduler = SyncScheduler()
