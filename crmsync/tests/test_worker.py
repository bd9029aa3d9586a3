"""Tests for the tenant driver and the background scheduler."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import func, select

from crmsync.config import settings
from crmsync.models.aasp import AASPConfig, AASPIntimacao
from crmsync.schemas.sync import SyncResult
from crmsync.tests.conftest import make_organization
from crmsync.worker import ScheduledJob, SyncScheduler, run_all_aasp, run_for_tenants


def tenants(n):
    return [SimpleNamespace(organization_id=uuid.uuid4()) for _ in range(n)]


def loader(configs):
    async def load():
        return configs
    return load


@pytest.mark.asyncio
async def test_one_failing_tenant_does_not_stop_the_rest():
    configs = tenants(3)
    seen = []

    async def run_one(config):
        seen.append(config.organization_id)
        if config is configs[1]:
            raise RuntimeError("tenant exploded")
        return SyncResult(success=True, new_count=1)

    report = await run_for_tenants("test", loader(configs), run_one)

    assert seen == [c.organization_id for c in configs]
    assert (report.processed, report.succeeded, report.failed) == (3, 2, 1)
    assert report.results[str(configs[1].organization_id)] == "tenant exploded"


@pytest.mark.asyncio
async def test_unsuccessful_result_counts_as_failed():
    async def run_one(config):
        return SyncResult(success=False, error="API retornou status 401")

    report = await run_for_tenants("test", loader(tenants(2)), run_one)

    assert report.failed == 2
    assert report.succeeded == 0


@pytest.mark.asyncio
async def test_tenant_timeout():
    configs = tenants(2)

    async def run_one(config):
        if config is configs[0]:
            await asyncio.sleep(5)
        return "ok"

    report = await run_for_tenants("test", loader(configs), run_one, tenant_timeout=0.05)

    assert report.failed == 1
    assert report.succeeded == 1
    assert "timed out" in report.results[str(configs[0].organization_id)]


@pytest.mark.asyncio
async def test_stop_event_skips_remaining_tenants():
    configs = tenants(3)
    stop = asyncio.Event()

    async def run_one(config):
        stop.set()
        return "ok"

    report = await run_for_tenants("test", loader(configs), run_one, stop_event=stop)

    assert report.processed == 1
    assert report.skipped == 2


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    running = 0
    peak = 0

    async def run_one(config):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return "ok"

    report = await run_for_tenants("test", loader(tenants(6)), run_one, concurrency=2)

    assert report.succeeded == 6
    assert peak == 2


@pytest.mark.asyncio
async def test_load_failure_propagates():
    async def load():
        raise RuntimeError("database down")

    async def run_one(config):
        return "ok"

    with pytest.raises(RuntimeError, match="database down"):
        await run_for_tenants("test", load, run_one)


@pytest.mark.asyncio
async def test_no_configs_is_a_quiet_run():
    async def run_one(config):
        raise AssertionError("should not run")

    report = await run_for_tenants("test", loader([]), run_one)
    assert report.processed == 0


@pytest.mark.asyncio
async def test_run_all_aasp_isolates_tenants(db, session_factory, mock_http):
    good = await make_organization(db, "good-firm")
    bad = await make_organization(db, "bad-firm")
    good_id, bad_id = good.id, bad.id
    for org, token in [(good, "good-token"), (bad, "bad-token")]:
        db.add(AASPConfig(organization_id=org.id, api_token=token))
    db.add(AASPConfig(
        organization_id=(await make_organization(db, "paused")).id,
        api_token="paused-token", is_active=False,
    ))
    await db.commit()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers["authorization"] == "Bearer bad-token":
            return httpx.Response(401, json={"message": "unauthorized"})
        if request.url.path.endswith("GetJornaisComIntimacoes/json"):
            return httpx.Response(200, json=[])
        return httpx.Response(200, json={"Items": [{"Id": "A1"}, {"Id": "A2"}]})

    http, calls = mock_http(handler)
    report = await run_all_aasp(session_factory, client=http)

    assert report.processed == 2
    assert report.succeeded == 1
    assert report.failed == 1
    assert report.results[str(good_id)].new_count == 2
    assert report.results[str(bad_id)].error == "API retornou status 401"
    assert not any(r.headers["authorization"] == "Bearer paused-token" for r in calls.requests)

    rows = (await db.execute(
        select(func.count(AASPIntimacao.id)).where(AASPIntimacao.organization_id == good_id)
    )).scalar()
    assert rows == 2


# -- Scheduler -------------------------------------------------------------

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


async def noop():
    return None


def test_interval_job_due_on_first_poll_then_after_interval():
    job = ScheduledJob("tick", noop, every_seconds=60)
    assert job.is_due(NOW)
    job.last_run = NOW
    assert not job.is_due(NOW + timedelta(seconds=30))
    assert job.is_due(NOW + timedelta(seconds=60))


def test_daily_job_runs_once_at_its_local_hour(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "America/Sao_Paulo")
    job = ScheduledJob("daily", noop, at_hour=9)

    assert job.is_due(NOW)  # 09:00 local
    assert not job.is_due(NOW + timedelta(hours=1))
    job.last_run = NOW
    assert not job.is_due(NOW + timedelta(minutes=30))
    assert job.is_due(NOW + timedelta(days=1))


@pytest.mark.asyncio
async def test_run_pending_survives_failing_job():
    calls = []

    async def broken():
        calls.append("broken")
        raise RuntimeError("boom")

    async def healthy():
        calls.append("healthy")

    scheduler = SyncScheduler(
        jobs=[
            ScheduledJob("broken", broken, every_seconds=60),
            ScheduledJob("healthy", healthy, every_seconds=60),
        ],
        poll_interval=0.01,
    )

    assert await scheduler.run_pending(NOW) == ["broken", "healthy"]
    assert calls == ["broken", "healthy"]
    assert await scheduler.run_pending(NOW + timedelta(seconds=10)) == []


@pytest.mark.asyncio
async def test_scheduler_start_and_stop(monkeypatch):
    monkeypatch.setattr(settings, "scheduler_enabled", True)
    ticks = asyncio.Event()

    async def tick():
        ticks.set()

    scheduler = SyncScheduler(jobs=[ScheduledJob("tick", tick, every_seconds=60)], poll_interval=0.01)
    scheduler.start()
    assert scheduler.running
    await asyncio.wait_for(ticks.wait(), timeout=1)

    await scheduler.stop()
    assert not scheduler.running


def test_disabled_scheduler_does_not_start():
    scheduler = SyncScheduler(jobs=[])
    scheduler.start()
    assert not scheduler.running
