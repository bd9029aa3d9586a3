"""Tests for the Asaas billing sync."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crmsync.errors import UpstreamError
from crmsync.models.asaas import AsaasCustomer, AsaasIntegration, AsaasPayment
from crmsync.models.organization import Organization
from crmsync.sync.asaas import (
    base_url_for,
    check_payment_statuses,
    fetch_asaas_json,
    sync_due_payments,
)

TODAY = date(2024, 6, 10)


async def make_integration(db, organization, **kwargs) -> AsaasIntegration:
    integration = AsaasIntegration(organization_id=organization.id, api_key="asaas-key", **kwargs)
    db.add(integration)
    await db.commit()
    return integration


def payment(asaas_id, due, status="PENDING", **extra):
    data = {
        "id": asaas_id,
        "customer": "cus_1",
        "customerName": "Cliente Um",
        "value": 150.5,
        "netValue": 148.0,
        "dueDate": due.isoformat(),
        "billingType": "BOLETO",
        "status": status,
        "invoiceUrl": f"https://asaas.test/i/{asaas_id}",
    }
    data.update(extra)
    return data


def listing(pages_by_status):
    """Serve ``/payments`` from ``{(status, dueDate[ge]): [payments]}`` honouring offset/limit."""
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        rows = pages_by_status.get((params["status"], params["dueDate[ge]"]), [])
        offset, limit = int(params["offset"]), int(params["limit"])
        return httpx.Response(200, json={"data": rows[offset:offset + limit]})
    return handler


def test_environment_selects_base_url():
    assert base_url_for(AsaasIntegration(environment="production")).startswith("https://api.asaas.com")
    assert "sandbox" in base_url_for(AsaasIntegration(environment="sandbox"))


@pytest.mark.asyncio
async def test_fetch_raises_on_error_status(mock_http):
    http, _ = mock_http(lambda req: httpx.Response(401, json={"errors": ["invalid key"]}))
    with pytest.raises(UpstreamError) as exc:
        await fetch_asaas_json("https://asaas.test", "k", "/payments", client=http)
    assert exc.value.status_code == 401

    http, _ = mock_http(lambda req: httpx.Response(200, json=[1, 2]))
    with pytest.raises(UpstreamError):
        await fetch_asaas_json("https://asaas.test", "k", "/payments", client=http)


@pytest.mark.asyncio
async def test_sync_due_payments_windows_and_upserts(
    db: AsyncSession, organization: Organization, mock_http,
):
    integration = await make_integration(db, organization)
    org_id = organization.id
    tomorrow = TODAY + timedelta(days=1)
    overdue_since = (TODAY - timedelta(days=5)).isoformat()
    http, calls = mock_http(listing({
        ("PENDING", TODAY.isoformat()): [payment("pay_1", TODAY), payment("pay_2", TODAY)],
        ("PENDING", tomorrow.isoformat()): [payment("pay_3", tomorrow)],
        ("OVERDUE", overdue_since): [payment("pay_4", TODAY - timedelta(days=2), "OVERDUE")],
    }))
    stale = AsaasPayment(
        organization_id=org_id, asaas_id="old", status="OVERDUE",
        due_date=TODAY - timedelta(days=20),
    )
    db.add(stale)
    await db.commit()

    stats = await sync_due_payments(db, integration, today=TODAY, client=http)

    assert (stats.today, stats.tomorrow, stats.day_after, stats.overdue) == (2, 1, 0, 1)
    assert stats.total == 4
    assert stats.cleaned_up == 1
    assert all(r.headers["access_token"] == "asaas-key" for r in calls.requests)

    ids = set((await db.execute(
        select(AsaasPayment.asaas_id).where(AsaasPayment.organization_id == org_id)
    )).scalars().all())
    assert ids == {"pay_1", "pay_2", "pay_3", "pay_4"}
    customers = (await db.execute(select(func.count(AsaasCustomer.id)))).scalar()
    assert customers == 1

    row = (await db.execute(select(AsaasPayment).where(AsaasPayment.asaas_id == "pay_1"))).scalar_one()
    assert row.value == Decimal("150.50")
    assert row.customer_id is not None
    await db.refresh(integration)
    assert integration.last_sync_at is not None


@pytest.mark.asyncio
async def test_resync_updates_status_and_keeps_urls(
    db: AsyncSession, organization: Organization, mock_http,
):
    integration = await make_integration(db, organization)
    key = ("PENDING", TODAY.isoformat())
    data = {key: [payment("pay_1", TODAY)]}
    http, _ = mock_http(listing(data))
    await sync_due_payments(db, integration, today=TODAY, client=http)

    data[key] = [payment("pay_1", TODAY, status="CONFIRMED", invoiceUrl=None, netValue=140)]
    await sync_due_payments(db, integration, today=TODAY, client=http)

    row = (await db.execute(
        select(AsaasPayment).where(AsaasPayment.asaas_id == "pay_1")
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert row.status == "CONFIRMED"
    assert row.net_value == Decimal("140")
    assert row.invoice_url == "https://asaas.test/i/pay_1"
    assert (await db.execute(select(func.count(AsaasPayment.id)))).scalar() == 1


@pytest.mark.asyncio
async def test_pagination_stops_at_max_items(
    db: AsyncSession, organization: Organization, mock_http, monkeypatch,
):
    from crmsync.config import settings
    monkeypatch.setattr(settings, "asaas_page_size", 2)
    integration = await make_integration(db, organization)
    day_after = TODAY + timedelta(days=2)
    rows = [payment(f"pay_{i}", day_after) for i in range(250)]
    http, calls = mock_http(listing({("PENDING", day_after.isoformat()): rows}))

    stats = await sync_due_payments(db, integration, today=TODAY, client=http)

    assert stats.day_after == 200
    offsets = [
        int(r.url.params["offset"]) for r in calls.requests
        if r.url.params["dueDate[ge]"] == day_after.isoformat()
    ]
    assert offsets[:3] == [0, 2, 4]
    assert len(offsets) == 100


@pytest.mark.asyncio
async def test_status_check_marks_paid_and_skips_failures(
    db: AsyncSession, organization: Organization, mock_http,
):
    integration = await make_integration(db, organization)
    org_id = organization.id
    for asaas_id, status, due in [
        ("pay_paid", "PENDING", TODAY),
        ("pay_same", "PENDING", TODAY - timedelta(days=3)),
        ("pay_gone", "OVERDUE", TODAY - timedelta(days=1)),
        ("pay_old", "OVERDUE", TODAY - timedelta(days=10)),
    ]:
        db.add(AsaasPayment(organization_id=org_id, asaas_id=asaas_id, status=status, due_date=due))
    await db.commit()

    def handler(request: httpx.Request) -> httpx.Response:
        asaas_id = request.url.path.rsplit("/", 1)[-1]
        if asaas_id == "pay_paid":
            return httpx.Response(200, json={
                "id": asaas_id, "status": "RECEIVED",
                "confirmedDate": "2024-06-09", "paymentDate": "2024-06-10",
            })
        if asaas_id == "pay_same":
            return httpx.Response(200, json={"id": asaas_id, "status": "PENDING"})
        return httpx.Response(404, json={"errors": []})

    http, calls = mock_http(handler)
    stats = await check_payment_statuses(db, integration, today=TODAY, client=http)

    assert (stats.checked, stats.updated, stats.newly_paid, stats.errors) == (3, 1, 1, 1)
    assert not any(path.endswith("/payments/pay_old") for path in calls.paths())
    paid = (await db.execute(
        select(AsaasPayment).where(AsaasPayment.asaas_id == "pay_paid")
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert paid.status == "RECEIVED"
    assert paid.payment_date == date(2024, 6, 10)


@pytest.mark.asyncio
async def test_status_check_skips_malformed_payment(
    db: AsyncSession, organization: Organization, mock_http,
):
    integration = await make_integration(db, organization)
    org_id = organization.id
    db.add(AsaasPayment(organization_id=org_id, asaas_id="pay_bad", status="PENDING", due_date=TODAY))
    db.add(AsaasPayment(
        organization_id=org_id, asaas_id="pay_good", status="PENDING",
        due_date=TODAY - timedelta(days=1),
    ))
    await db.commit()

    def handler(request: httpx.Request) -> httpx.Response:
        asaas_id = request.url.path.rsplit("/", 1)[-1]
        confirmed = "10/06/2024" if asaas_id == "pay_bad" else "2024-06-10"
        return httpx.Response(200, json={
            "id": asaas_id, "status": "CONFIRMED", "confirmedDate": confirmed,
        })

    http, _ = mock_http(handler)
    stats = await check_payment_statuses(db, integration, today=TODAY, client=http)

    assert (stats.checked, stats.updated, stats.newly_paid, stats.errors) == (2, 1, 1, 1)
    rows = dict((await db.execute(
        select(AsaasPayment.asaas_id, AsaasPayment.status)
        .where(AsaasPayment.organization_id == org_id)
    )).all())
    assert rows == {"pay_bad": "PENDING", "pay_good": "CONFIRMED"}
