"""Scheduled WhatsApp message sender.

Each due message is claimed with a conditional ``pending -> sending``
update before anything is sent, so overlapping ticks never send the same
message twice.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..config import settings
from ..errors import ProviderConfigError
from ..models.messaging import ChatMessage, Conversation, ScheduledMessage, UserAlert
from ..providers import send_message
from ..schemas.sync import DispatchStats

logger = logging.getLogger(__name__)

CONNECTION_INACTIVE = "Conexão não está ativa"


async def _due_ids(db: AsyncSession, now: datetime, limit: int) -> list[uuid.UUID]:
    stmt = (
        select(ScheduledMessage.id)
        .where(
            ScheduledMessage.status == "pending",
            ScheduledMessage.scheduled_at <= now,
        )
        .order_by(ScheduledMessage.scheduled_at.asc())
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all())


async def claim_message(db: AsyncSession, message_id: uuid.UUID) -> bool:
    """Move a message from pending to sending. False when another tick got it first."""
    result = await db.execute(
        update(ScheduledMessage)
        .where(ScheduledMessage.id == message_id, ScheduledMessage.status == "pending")
        .values(status="sending")
    )
    await db.commit()
    return (result.rowcount or 0) == 1


async def _mark_failed(db: AsyncSession, msg: ScheduledMessage, error: str) -> None:
    msg.status = "failed"
    msg.error_message = error
    await db.commit()


async def _record_sent(
    db: AsyncSession,
    msg: ScheduledMessage,
    conversation: Conversation,
    provider_message_id: str | None,
    now: datetime,
) -> None:
    msg.status = "sent"
    msg.sent_at = now
    msg.error_message = None

    db.add(ChatMessage(
        conversation_id=conversation.id,
        message_id=provider_message_id,
        from_me=True,
        sender_id=msg.sender_id,
        content=msg.content,
        message_type=msg.message_type,
        media_url=msg.media_url,
        media_mimetype=msg.media_mimetype,
        status="sent",
        timestamp=now,
    ))
    conversation.last_message_at = now

    if msg.sender_id:
        contact = conversation.contact_name or conversation.contact_phone or "Contato"
        db.add(UserAlert(
            user_id=msg.sender_id,
            type="scheduled_message_sent",
            title="📅 Mensagem agendada enviada",
            message=f"Mensagem enviada para {contact}",
            metadata_json={
                "conversation_id": str(conversation.id),
                "scheduled_message_id": str(msg.id),
                "message_preview": (msg.content or "")[:100],
            },
        ))
    await db.commit()


async def _mark_failed_by_id(db: AsyncSession, message_id: uuid.UUID, error: str) -> None:
    await db.execute(
        update(ScheduledMessage)
        .where(ScheduledMessage.id == message_id)
        .values(status="failed", error_message=error[:500])
    )
    await db.commit()


async def _send_claimed(
    db: AsyncSession,
    message_id: uuid.UUID,
    stats: DispatchStats,
    *,
    client: httpx.AsyncClient | None = None,
) -> None:
    msg = (await db.execute(
        select(ScheduledMessage)
        .where(ScheduledMessage.id == message_id)
        .options(
            selectinload(ScheduledMessage.conversation),
            selectinload(ScheduledMessage.connection),
        )
        .execution_options(populate_existing=True)
    )).scalar_one()
    conn = msg.connection
    conversation = msg.conversation

    if not conn.is_connected:
        logger.warning("Connection %s not active for scheduled message %s", conn.id, msg.id)
        await _mark_failed(db, msg, CONNECTION_INACTIVE)
        stats.failed += 1
        return

    try:
        result = await send_message(
            conn.to_target(),
            conversation.remote_jid,
            msg.content or "",
            msg.message_type,
            msg.media_url,
            client=client,
        )
    except ProviderConfigError as exc:
        await _mark_failed(db, msg, str(exc))
        stats.failed += 1
        return

    if result.success:
        await _record_sent(db, msg, conversation, result.message_id, datetime.now(timezone.utc))
        stats.sent += 1
        logger.info("Sent scheduled message %s", message_id)
    else:
        await _mark_failed(db, msg, result.error or "Unknown error")
        stats.failed += 1
        logger.warning("Failed to send scheduled message %s: %s", message_id, result.error)


async def dispatch_due_messages(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    limit: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> DispatchStats:
    """Send every pending message whose ``scheduled_at`` has passed."""
    now = now or datetime.now(timezone.utc)
    limit = limit or settings.scheduled_messages_batch_size
    stats = DispatchStats()

    ids = await _due_ids(db, now, limit)
    if not ids:
        logger.debug("No scheduled messages due")
        return stats

    logger.info("Found %d scheduled messages to send", len(ids))
    for index, message_id in enumerate(ids):
        if not await claim_message(db, message_id):
            stats.skipped += 1
            continue
        stats.processed += 1

        try:
            await _send_claimed(db, message_id, stats, client=client)
        except Exception as exc:
            logger.exception("Error sending scheduled message %s", message_id)
            await db.rollback()
            await _mark_failed_by_id(db, message_id, str(exc) or type(exc).__name__)
            stats.failed += 1

        if index < len(ids) - 1 and settings.scheduled_messages_send_delay_seconds > 0:
            await asyncio.sleep(settings.scheduled_messages_send_delay_seconds)

    logger.info(
        "Scheduled messages run complete: processed=%d sent=%d failed=%d skipped=%d",
        stats.processed, stats.sent, stats.failed, stats.skipped,
        extra={"event": "scheduled_messages.complete"},
    )
    return stats
