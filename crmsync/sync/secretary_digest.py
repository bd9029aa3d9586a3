"""Group secretary daily digest."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import ConnectionUnavailable
from ..models.secretary import CRMTask, GroupSecretaryConfig, GroupSecretaryLog
from ..providers import send_message
from ..services.notify_svc import mask_phone, normalize_phone, resolve_connection

logger = logging.getLogger(__name__)

NEGATIVE_SENTIMENTS = ("negative", "urgent_negative")
TOP_MEMBERS = 5


@dataclass
class DigestStats:
    total: int = 0
    matched: int = 0
    urgent: int = 0
    high_priority: int = 0
    negative_sentiment: int = 0
    pending_tasks: int = 0
    top_members: list[tuple[str, int]] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def already_sent_today(config: GroupSecretaryConfig, now: datetime) -> bool:
    if config.last_digest_at is None:
        return False
    return _as_utc(config.last_digest_at).astimezone(now.tzinfo).date() == now.date()


async def collect_stats(
    db: AsyncSession, organization_id: uuid.UUID, now: datetime
) -> DigestStats:
    since = now.astimezone(timezone.utc) - timedelta(hours=24)
    window = (
        GroupSecretaryLog.organization_id == organization_id,
        GroupSecretaryLog.created_at >= since,
    )

    row = (await db.execute(
        select(
            func.count(GroupSecretaryLog.id),
            func.count(GroupSecretaryLog.matched_user_id),
            func.sum(case((GroupSecretaryLog.priority == "urgent", 1), else_=0)),
            func.sum(case((GroupSecretaryLog.priority == "high", 1), else_=0)),
            func.sum(case((GroupSecretaryLog.sentiment.in_(NEGATIVE_SENTIMENTS), 1), else_=0)),
        ).where(*window)
    )).one()
    stats = DigestStats(
        total=row[0] or 0,
        matched=row[1] or 0,
        urgent=row[2] or 0,
        high_priority=row[3] or 0,
        negative_sentiment=row[4] or 0,
    )
    if stats.total == 0:
        return stats

    stats.pending_tasks = (await db.execute(
        select(func.count(CRMTask.id)).where(
            CRMTask.organization_id == organization_id,
            CRMTask.source == "group_secretary",
            CRMTask.status == "pending",
        )
    )).scalar() or 0

    count = func.count(GroupSecretaryLog.id).label("count")
    top = await db.execute(
        select(GroupSecretaryLog.matched_user_name, count)
        .where(*window, GroupSecretaryLog.matched_user_name.is_not(None))
        .group_by(GroupSecretaryLog.matched_user_name)
        .order_by(count.desc(), GroupSecretaryLog.matched_user_name)
        .limit(TOP_MEMBERS)
    )
    stats.top_members = [(name, n) for name, n in top.all()]
    return stats


def format_digest(stats: DigestStats, now: datetime) -> str:
    lines = [
        "📊 *Resumo Diário - Secretária IA*",
        f"📅 {now.strftime('%d/%m/%Y')}",
        "",
        f"📌 *Detecções (24h):* {stats.total}",
        f"✅ *Com responsável:* {stats.matched}",
        f"🔴 *Urgentes:* {stats.urgent}",
        f"🟠 *Alta prioridade:* {stats.high_priority}",
        f"😠 *Sentimento negativo:* {stats.negative_sentiment}",
        f"⏳ *Tarefas pendentes:* {stats.pending_tasks}",
    ]
    if stats.top_members:
        lines += ["", "👥 *Mais demandados:*"]
        lines += [f"  • {name}: {n} solicitações" for name, n in stats.top_members]
    lines += ["", "_Acesse o sistema para mais detalhes._"]
    return "\n".join(lines)


async def send_digest(
    db: AsyncSession,
    config: GroupSecretaryConfig,
    now: datetime,
    *,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Send one tenant's digest. Returns False when there was nothing to report."""
    stats = await collect_stats(db, config.organization_id, now)
    if stats.total == 0:
        logger.debug("No secretary detections for org %s", config.organization_id)
        return False

    phone = normalize_phone(config.notify_external_phone)
    if not phone:
        return False

    conn = await resolve_connection(db, config.organization_id, config.default_connection_id)
    if conn is None:
        raise ConnectionUnavailable(
            f"No connected WhatsApp connection for org {config.organization_id}"
        )

    result = await send_message(conn.to_target(), phone, format_digest(stats, now), client=client)
    if not result.success:
        logger.warning(
            "Digest to %s failed for org %s: %s",
            mask_phone(phone), config.organization_id, result.error,
        )
        return False

    config.last_digest_at = now.astimezone(timezone.utc)
    await db.commit()
    logger.info(
        "Sent daily digest to %s for org %s", mask_phone(phone), config.organization_id,
        extra={"event": "secretary.digest.sent"},
    )
    return True


async def send_daily_digests(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    client: httpx.AsyncClient | None = None,
) -> int:
    """Send digests for every tenant whose digest hour is ``now``. Returns digests sent."""
    now = (now or datetime.now(timezone.utc)).astimezone(settings.tz)

    config_ids = (await db.execute(
        select(GroupSecretaryConfig.id).where(
            GroupSecretaryConfig.is_active.is_(True),
            GroupSecretaryConfig.daily_digest_enabled.is_(True),
            GroupSecretaryConfig.daily_digest_hour == now.hour,
            GroupSecretaryConfig.notify_external_phone.is_not(None),
        )
    )).scalars().all()

    sent = 0
    for config_id in config_ids:
        # Re-select per tenant; a rollback below expires loaded instances.
        config = (await db.execute(
            select(GroupSecretaryConfig)
            .where(GroupSecretaryConfig.id == config_id)
            .execution_options(populate_existing=True)
        )).scalar_one()
        if already_sent_today(config, now):
            continue
        org_id = config.organization_id
        try:
            if await send_digest(db, config, now, client=client):
                sent += 1
        except Exception:
            logger.exception("Daily digest failed for org %s", org_id)
            await db.rollback()
    return sent
