"""Tests for the secretary daily digest."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from crmsync.config import settings
from crmsync.models.connection import Connection
from crmsync.models.organization import Organization
from crmsync.models.secretary import CRMTask, GroupSecretaryConfig, GroupSecretaryLog
from crmsync.sync.secretary_digest import DigestStats, format_digest, send_daily_digests
from crmsync.tests.conftest import make_connection, make_organization

# 09:00 in America/Sao_Paulo
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
DIGEST_HOUR = 9


@pytest.fixture(autouse=True)
def sao_paulo(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "America/Sao_Paulo")


async def make_secretary(db, organization, **kwargs) -> GroupSecretaryConfig:
    config = GroupSecretaryConfig(
        organization_id=organization.id,
        daily_digest_enabled=True,
        daily_digest_hour=kwargs.pop("daily_digest_hour", DIGEST_HOUR),
        notify_external_phone=kwargs.pop("notify_external_phone", "+55 11 90000-0001"),
        **kwargs,
    )
    db.add(config)
    await db.commit()
    return config


async def add_logs(db, organization, rows):
    recent = NOW - timedelta(hours=2)
    for name, priority, sentiment in rows:
        db.add(GroupSecretaryLog(
            organization_id=organization.id,
            matched_user_id=uuid.uuid4() if name else None,
            matched_user_name=name,
            priority=priority,
            sentiment=sentiment,
            created_at=recent,
        ))
    await db.commit()


def test_format_digest_lists_top_members():
    text = format_digest(
        DigestStats(total=3, matched=2, urgent=1, top_members=[("Ana", 2), ("Rui", 1)]),
        NOW,
    )
    assert text.startswith("📊 *Resumo Diário - Secretária IA*")
    assert "📅 01/06/2024" in text
    assert "  • Ana: 2 solicitações" in text
    assert text.endswith("_Acesse o sistema para mais detalhes._")


@pytest.mark.asyncio
async def test_sends_digest_with_stats(
    db: AsyncSession, organization: Organization, connection: Connection, mock_http,
):
    await make_secretary(db, organization)
    await add_logs(db, organization, [
        ("Ana", "urgent", "negative"),
        ("Ana", "high", "neutral"),
        (None, "normal", "urgent_negative"),
    ])
    db.add(CRMTask(organization_id=organization.id, title="Ligar", source="group_secretary"))
    await db.commit()
    http, calls = mock_http(lambda req: httpx.Response(200, json={"key": {"id": "D1"}}))

    sent = await send_daily_digests(db, now=NOW, client=http)

    assert sent == 1
    body = json.loads(calls.requests[0].content)
    assert body["number"] == "5511900000001"
    assert "📌 *Detecções (24h):* 3" in body["text"]
    assert "✅ *Com responsável:* 2" in body["text"]
    assert "🔴 *Urgentes:* 1" in body["text"]
    assert "😠 *Sentimento negativo:* 2" in body["text"]
    assert "⏳ *Tarefas pendentes:* 1" in body["text"]
    assert "  • Ana: 2 solicitações" in body["text"]


@pytest.mark.asyncio
async def test_digest_sent_once_per_day(
    db: AsyncSession, organization: Organization, connection: Connection, mock_http,
):
    await make_secretary(db, organization)
    await add_logs(db, organization, [("Ana", "high", "neutral")])
    http, calls = mock_http(lambda req: httpx.Response(200, json={}))

    assert await send_daily_digests(db, now=NOW, client=http) == 1
    assert await send_daily_digests(db, now=NOW + timedelta(minutes=20), client=http) == 0
    assert len(calls.requests) == 1


@pytest.mark.asyncio
async def test_skips_other_hours_and_quiet_days(
    db: AsyncSession, organization: Organization, connection: Connection, mock_http,
):
    await make_secretary(db, organization)
    http, calls = mock_http(lambda req: httpx.Response(200, json={}))

    # no detections in the last 24h
    assert await send_daily_digests(db, now=NOW, client=http) == 0

    await add_logs(db, organization, [("Ana", "high", "neutral")])
    assert await send_daily_digests(db, now=NOW + timedelta(hours=3), client=http) == 0
    assert calls.requests == []


@pytest.mark.asyncio
async def test_one_tenant_failure_does_not_block_others(
    db: AsyncSession, organization: Organization, connection: Connection, mock_http,
):
    lonely = await make_organization(db, "no-connection")
    await make_secretary(db, lonely)
    await add_logs(db, lonely, [("Rui", "high", "neutral")])

    await make_secretary(db, organization)
    await add_logs(db, organization, [("Ana", "high", "neutral")])
    http, calls = mock_http(lambda req: httpx.Response(200, json={}))

    assert await send_daily_digests(db, now=NOW, client=http) == 1
    assert len(calls.requests) == 1


@pytest.mark.asyncio
async def test_default_connection_is_preferred(
    db: AsyncSession, organization: Organization, connection: Connection, mock_http,
):
    hosted = await make_connection(db, organization, provider="wapi", name="secretary")
    await make_secretary(db, organization, default_connection_id=hosted.id)
    await add_logs(db, organization, [("Ana", "high", "neutral")])
    http, calls = mock_http(lambda req: httpx.Response(200, json={"messageId": "x"}))

    assert await send_daily_digests(db, now=NOW, client=http) == 1
    assert calls.requests[0].url.path.endswith("/message/send-text")
