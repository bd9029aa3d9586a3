"""WhatsApp notification dispatch.

Notifications are best-effort: every failure is logged and reported as
``False``; nothing here raises into the job that asked for the send.
"""

from __future__ import annotations

import logging
import re
import uuid

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.connection import Connection
from ..providers import send_message

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str | None) -> str:
    return _NON_DIGITS.sub("", phone or "")


def mask_phone(phone: str | None) -> str:
    digits = normalize_phone(phone)
    if len(digits) <= 4:
        return digits
    return "*" * (len(digits) - 4) + digits[-4:]


def format_intimacoes_message(count: int) -> str:
    return (
        "📋 *Novas Intimações AASP*\n\n"
        f"Foram encontradas *{count}* nova(s) intimação(ões).\n\n"
        "Acesse o sistema para visualizar os detalhes."
    )


async def resolve_connection(
    db: AsyncSession,
    organization_id: uuid.UUID,
    preferred_id: uuid.UUID | None = None,
) -> Connection | None:
    """Preferred connection if connected, else the tenant's oldest connected one."""
    if preferred_id:
        stmt = select(Connection).where(
            Connection.id == preferred_id,
            Connection.organization_id == organization_id,
            Connection.status == "connected",
        )
        conn = (await db.execute(stmt)).scalar_one_or_none()
        if conn:
            return conn

    stmt = (
        select(Connection)
        .where(
            Connection.organization_id == organization_id,
            Connection.status == "connected",
        )
        .order_by(Connection.created_at.asc(), Connection.id.asc())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def notify(
    db: AsyncSession,
    *,
    organization_id: uuid.UUID,
    connection_id: uuid.UUID | None,
    phone: str | None,
    message: str,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Send a text notification to ``phone``. Returns True when delivered to the provider."""
    try:
        number = normalize_phone(phone)
        if not number:
            logger.info("Skipping notification for org %s: empty phone", organization_id)
            return False

        conn = await resolve_connection(db, organization_id, connection_id)
        if conn is None:
            logger.warning("No connected WhatsApp connection for org %s", organization_id)
            return False

        result = await send_message(conn.to_target(), number, message, "text", client=client)
        if not result.success:
            logger.warning(
                "Notification to %s via %s failed: %s",
                mask_phone(number), conn.provider, result.error,
            )
            return False

        logger.info(
            "Notification sent to %s via %s", mask_phone(number), conn.provider,
            extra={"event": "notify.sent"},
        )
        return True
    except Exception:
        logger.exception("Notification dispatch failed for org %s", organization_id)
        return False


async def notify_new_intimacoes(
    db: AsyncSession,
    connection_id: uuid.UUID | None,
    phone: str | None,
    count: int,
    organization_id: uuid.UUID,
    *,
    client: httpx.AsyncClient | None = None,
) -> bool:
    return await notify(
        db,
        organization_id=organization_id,
        connection_id=connection_id,
        phone=phone,
        message=format_intimacoes_message(count),
        client=client,
    )
