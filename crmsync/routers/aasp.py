"""AASP routes - config, intimações and manual sync."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import get_db, get_session_factory
from ..models.aasp import AASPConfig
from ..schemas.aasp import (
    AASPConfigIn,
    AASPConfigOut,
    IntimacaoOut,
    IntimacaoPage,
    MarkReadIn,
    SyncLogOut,
)
from ..schemas.sync import SyncResult
from ..services import aasp_svc, audit_svc
from ..services.audit_svc import DatabaseSyncAudit
from ..sync.aasp import sync_aasp
from ..tenant.deps import get_organization_id

router = APIRouter(prefix="/api/aasp", tags=["aasp"])


def _config_out(config: AASPConfig) -> AASPConfigOut:
    return AASPConfigOut(
        id=config.id,
        organization_id=config.organization_id,
        notify_phone=config.notify_phone,
        connection_id=config.connection_id,
        is_active=config.is_active,
        last_sync_at=config.last_sync_at,
        api_token_masked=aasp_svc.mask_token(config.api_token),
    )


@router.get("/config", response_model=AASPConfigOut | None)
async def get_config(
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    config = await aasp_svc.get_config(db, org_id)
    return _config_out(config) if config else None


@router.post("/config", response_model=AASPConfigOut)
async def save_config(
    body: AASPConfigIn,
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        config = await aasp_svc.save_config(db, org_id, **body.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _config_out(config)


@router.get("/intimacoes", response_model=IntimacaoPage)
async def list_intimacoes(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    unread_only: bool = False,
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await aasp_svc.list_intimacoes(
        db, org_id, page=page, limit=limit, unread_only=unread_only
    )
    return IntimacaoPage(
        data=[IntimacaoOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/intimacoes/unread-count")
async def unread_count(
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    return {"count": await aasp_svc.unread_count(db, org_id)}


@router.post("/intimacoes/mark-read")
async def mark_read(
    body: MarkReadIn,
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    await aasp_svc.mark_read(db, org_id, body.ids)
    return {"success": True}


@router.post("/sync", response_model=SyncResult)
async def manual_sync(
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    config = await aasp_svc.get_config(db, org_id, active_only=True)
    if config is None:
        raise HTTPException(status_code=400, detail="Configuração AASP não encontrada ou inativa")
    audit = DatabaseSyncAudit(session_factory, org_id, "aasp")
    return await sync_aasp(db, config, audit=audit)


@router.get("/sync-logs", response_model=list[SyncLogOut])
async def get_sync_logs(
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    return await audit_svc.list_sync_logs(db, org_id, integration="aasp", limit=200)


@router.delete("/sync-logs")
async def clear_sync_logs(
    org_id: uuid.UUID = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    await audit_svc.clear_sync_logs(db, org_id, integration="aasp")
    return {"success": True}
