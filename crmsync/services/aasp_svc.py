"""AASP service - config management and intimação queries."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.aasp import AASPConfig, AASPIntimacao


def mask_token(token: str | None) -> str | None:
    if not token:
        return None
    return "••••••••" + token[-4:]


async def get_config(
    db: AsyncSession, organization_id: uuid.UUID, *, active_only: bool = False
) -> AASPConfig | None:
    stmt = select(AASPConfig).where(AASPConfig.organization_id == organization_id)
    if active_only:
        stmt = stmt.where(AASPConfig.is_active.is_(True))
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_active_configs(db: AsyncSession) -> list[AASPConfig]:
    stmt = select(AASPConfig).where(AASPConfig.is_active.is_(True)).order_by(AASPConfig.created_at)
    return list((await db.execute(stmt)).scalars().all())


async def save_config(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    api_token: str | None = None,
    notify_phone: str | None = None,
    connection_id: uuid.UUID | None = None,
    is_active: bool = True,
) -> AASPConfig:
    """Create or update the tenant's config.

    The token is required on create and only replaced on update when given.
    Raises ValueError when creating without a token.
    """
    config = await get_config(db, organization_id)
    if config is None:
        if not api_token:
            raise ValueError("Token da API é obrigatório")
        config = AASPConfig(organization_id=organization_id, api_token=api_token)
        db.add(config)
    elif api_token:
        config.api_token = api_token

    config.notify_phone = notify_phone or None
    config.connection_id = connection_id
    config.is_active = is_active
    await db.commit()
    await db.refresh(config)
    return config


async def list_intimacoes(
    db: AsyncSession,
    organization_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = 50,
    unread_only: bool = False,
) -> tuple[list[AASPIntimacao], int]:
    """Newest publications first. Returns (intimacoes, total)."""
    stmt = select(AASPIntimacao).where(AASPIntimacao.organization_id == organization_id)
    if unread_only:
        stmt = stmt.where(AASPIntimacao.read.is_(False))

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    page = max(page, 1)
    stmt = stmt.order_by(
        AASPIntimacao.data_publicacao.desc(), AASPIntimacao.created_at.desc()
    ).offset((page - 1) * limit).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def unread_count(db: AsyncSession, organization_id: uuid.UUID) -> int:
    stmt = select(func.count(AASPIntimacao.id)).where(
        AASPIntimacao.organization_id == organization_id,
        AASPIntimacao.read.is_(False),
    )
    return (await db.execute(stmt)).scalar() or 0


async def mark_read(
    db: AsyncSession,
    organization_id: uuid.UUID,
    ids: list[uuid.UUID] | None = None,
) -> int:
    """Mark the given intimações read, or every unread one when ``ids`` is empty."""
    stmt = update(AASPIntimacao).where(AASPIntimacao.organization_id == organization_id)
    if ids:
        stmt = stmt.where(AASPIntimacao.id.in_(ids))
    else:
        stmt = stmt.where(AASPIntimacao.read.is_(False))
    result = await db.execute(stmt.values(read=True))
    await db.commit()
    return result.rowcount or 0
