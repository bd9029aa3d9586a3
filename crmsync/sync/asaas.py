"""Asaas billing sync.

Two daily jobs per integration: pull the payments due in the next few
days (plus recent overdue ones) into the local tables, and re-check the
status of local open payments so paid ones are caught even when a
webhook was missed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import httpx
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import UpstreamError
from ..http.retry import fetch_json_with_retry
from ..models.asaas import AsaasCustomer, AsaasIntegration, AsaasPayment
from ..schemas.sync import AsaasStatusStats, AsaasSyncStats
from .upsert import upsert_update

logger = logging.getLogger(__name__)

PAID_STATUSES = frozenset({"RECEIVED", "CONFIRMED", "RECEIVED_IN_CASH"})
OVERDUE_WINDOW_DAYS = 5
PENDING_WINDOW_DAYS = 30
STATUS_CHECK_LIMIT = 500


def base_url_for(integration: AsaasIntegration) -> str:
    if integration.environment == "production":
        return settings.asaas_production_url
    return settings.asaas_sandbox_url


async def fetch_asaas_json(
    base_url: str,
    api_key: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """GET an Asaas endpoint. Raises UpstreamError on non-2xx or non-object bodies."""
    resp = await fetch_json_with_retry(
        f"{base_url.rstrip('/')}{path}",
        headers={"access_token": api_key, "Accept": "application/json"},
        params=params,
        label="asaas",
        client=client,
    )
    if not resp.ok:
        snippet = resp.data if isinstance(resp.data, str) else str(resp.data or {})
        raise UpstreamError(
            f"Asaas {resp.status}: {snippet[:300]}", status_code=resp.status, detail=resp.data
        )
    if not isinstance(resp.data, dict):
        raise UpstreamError("Asaas: resposta inválida (não-JSON)", status_code=resp.status)
    return resp.data


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _date(value: Any) -> date | None:
    if not value:
        return None
    return date.fromisoformat(str(value)[:10])


async def _upsert_customer(
    db: AsyncSession, organization_id: uuid.UUID, payment: dict
) -> uuid.UUID | None:
    asaas_customer = payment.get("customer")
    if not asaas_customer:
        return None
    return await upsert_update(
        db,
        AsaasCustomer,
        {
            "organization_id": organization_id,
            "asaas_id": str(asaas_customer),
            "name": payment.get("customerName") or "Cliente",
            "email": payment.get("customerEmail"),
            "phone": payment.get("customerPhone"),
        },
        conflict_columns=["organization_id", "asaas_id"],
        update_columns=(),
        coalesce_columns=("name", "email", "phone"),
    )


async def _upsert_payment(
    db: AsyncSession,
    organization_id: uuid.UUID,
    payment: dict,
    customer_id: uuid.UUID | None,
) -> uuid.UUID:
    return await upsert_update(
        db,
        AsaasPayment,
        {
            "organization_id": organization_id,
            "asaas_id": str(payment["id"]),
            "customer_id": customer_id,
            "asaas_customer_id": payment.get("customer"),
            "value": _decimal(payment.get("value")),
            "net_value": _decimal(payment.get("netValue")),
            "due_date": _date(payment.get("dueDate")),
            "billing_type": payment.get("billingType"),
            "status": payment.get("status"),
            "invoice_url": payment.get("invoiceUrl"),
            "bank_slip_url": payment.get("bankSlipUrl"),
            "pix_copy_paste": payment.get("pixCopiaECola"),
            "description": payment.get("description"),
            "external_reference": payment.get("externalReference"),
        },
        conflict_columns=["organization_id", "asaas_id"],
        update_columns=("status", "net_value", "due_date"),
        coalesce_columns=("invoice_url", "bank_slip_url", "pix_copy_paste"),
    )


async def sync_payment_batch(
    db: AsyncSession,
    integration: AsaasIntegration,
    filters: dict[str, str],
    max_items: int,
    *,
    client: httpx.AsyncClient | None = None,
) -> int:
    """Page through ``/payments`` with ``filters`` and upsert up to ``max_items``."""
    organization_id = integration.organization_id
    base_url = base_url_for(integration)
    page_size = settings.asaas_page_size
    count = 0
    offset = 0

    while count < max_items:
        data = await fetch_asaas_json(
            base_url, integration.api_key, "/payments",
            params={**filters, "limit": page_size, "offset": offset},
            client=client,
        )
        page = data.get("data") or []
        if not page:
            break

        for payment in page:
            if count >= max_items:
                break
            customer_id = await _upsert_customer(db, organization_id, payment)
            await _upsert_payment(db, organization_id, payment, customer_id)
            count += 1
        await db.commit()

        offset += page_size
        if len(page) < page_size:
            break
        if settings.asaas_page_delay_seconds > 0:
            await asyncio.sleep(settings.asaas_page_delay_seconds)

    return count


async def sync_due_payments(
    db: AsyncSession,
    integration: AsaasIntegration,
    *,
    today: date | None = None,
    client: httpx.AsyncClient | None = None,
) -> AsaasSyncStats:
    """Sync payments due today, tomorrow and the day after, plus recent overdue ones."""
    today = today or datetime.now(settings.tz).date()
    organization_id = integration.organization_id
    stats = AsaasSyncStats()

    def pending_on(day: date) -> dict[str, str]:
        iso = day.isoformat()
        return {"status": "PENDING", "dueDate[ge]": iso, "dueDate[le]": iso}

    stats.today = await sync_payment_batch(
        db, integration, pending_on(today), 500, client=client
    )
    stats.tomorrow = await sync_payment_batch(
        db, integration, pending_on(today + timedelta(days=1)), 300, client=client
    )
    stats.day_after = await sync_payment_batch(
        db, integration, pending_on(today + timedelta(days=2)), 200, client=client
    )
    overdue_since = today - timedelta(days=OVERDUE_WINDOW_DAYS)
    stats.overdue = await sync_payment_batch(
        db, integration,
        {"status": "OVERDUE", "dueDate[ge]": overdue_since.isoformat()},
        500, client=client,
    )

    cleanup = await db.execute(
        delete(AsaasPayment).where(
            AsaasPayment.organization_id == organization_id,
            AsaasPayment.status == "OVERDUE",
            AsaasPayment.due_date < overdue_since,
        )
    )
    stats.cleaned_up = cleanup.rowcount or 0

    await db.execute(
        update(AsaasIntegration)
        .where(AsaasIntegration.organization_id == organization_id)
        .values(last_sync_at=datetime.now(timezone.utc))
    )
    await db.commit()

    logger.info(
        "Asaas sync for org %s: today=%d tomorrow=%d day_after=%d overdue=%d cleaned=%d",
        organization_id, stats.today, stats.tomorrow, stats.day_after,
        stats.overdue, stats.cleaned_up,
        extra={"event": "asaas.sync.complete"},
    )
    return stats


async def check_payment_statuses(
    db: AsyncSession,
    integration: AsaasIntegration,
    *,
    today: date | None = None,
    client: httpx.AsyncClient | None = None,
) -> AsaasStatusStats:
    """Refresh local PENDING/OVERDUE payments from Asaas."""
    today = today or datetime.now(settings.tz).date()
    base_url = base_url_for(integration)
    api_key = integration.api_key
    organization_id = integration.organization_id
    stats = AsaasStatusStats()

    # Rollbacks below expire ORM state; work from plain tuples.
    local = (await db.execute(
        select(AsaasPayment.id, AsaasPayment.asaas_id, AsaasPayment.status)
        .where(
            AsaasPayment.organization_id == organization_id,
            or_(
                and_(
                    AsaasPayment.status == "PENDING",
                    AsaasPayment.due_date >= today - timedelta(days=PENDING_WINDOW_DAYS),
                ),
                and_(
                    AsaasPayment.status == "OVERDUE",
                    AsaasPayment.due_date >= today - timedelta(days=OVERDUE_WINDOW_DAYS),
                ),
            ),
        )
        .order_by(AsaasPayment.due_date.desc())
        .limit(STATUS_CHECK_LIMIT)
    )).all()

    for payment_id, asaas_id, local_status in local:
        stats.checked += 1
        try:
            remote = await fetch_asaas_json(
                base_url, api_key, f"/payments/{asaas_id}", client=client
            )
            status = remote.get("status")
            if not status or status == local_status:
                continue

            await db.execute(
                update(AsaasPayment)
                .where(AsaasPayment.id == payment_id)
                .values(
                    status=status,
                    confirmed_date=_date(remote.get("confirmedDate")),
                    payment_date=_date(remote.get("paymentDate")),
                )
            )
            await db.commit()
        except UpstreamError as exc:
            stats.errors += 1
            if exc.status_code == 404:
                logger.debug("Asaas payment %s not found", asaas_id)
            else:
                logger.warning("Error checking Asaas payment %s: %s", asaas_id, exc)
            continue
        except Exception as exc:
            await db.rollback()
            stats.errors += 1
            logger.warning("Error checking Asaas payment %s: %s", asaas_id, exc)
            continue

        stats.updated += 1
        if status in PAID_STATUSES:
            stats.newly_paid += 1
            logger.info("Asaas payment %s is now paid (%s)", asaas_id, status)

    logger.info(
        "Asaas status check for org %s: checked=%d updated=%d paid=%d errors=%d",
        organization_id, stats.checked, stats.updated,
        stats.newly_paid, stats.errors,
        extra={"event": "asaas.status_check.complete"},
    )
    return stats
