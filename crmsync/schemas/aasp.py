"""AASP API schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AASPConfigIn(BaseModel):
    api_token: str | None = None
    notify_phone: str | None = None
    connection_id: uuid.UUID | None = None
    is_active: bool = True


class AASPConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    notify_phone: str | None = None
    connection_id: uuid.UUID | None = None
    is_active: bool
    last_sync_at: datetime | None = None
    api_token_masked: str | None = None


class IntimacaoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    external_id: str
    jornal: str | None = None
    data_publicacao: date | None = None
    data_disponibilizacao: date | None = None
    caderno: str | None = None
    pagina: str | None = None
    comarca: str | None = None
    vara: str | None = None
    processo: str | None = None
    tipo: str | None = None
    conteudo: str | None = None
    partes: str | None = None
    advogados: str | None = None
    notified: bool = False
    read: bool = False
    created_at: datetime | None = None


class IntimacaoPage(BaseModel):
    data: list[IntimacaoOut]
    total: int
    page: int
    limit: int


class MarkReadIn(BaseModel):
    ids: list[uuid.UUID] | None = None


class SyncLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    level: str
    event: str
    payload: dict[str, Any] | None = None
    created_at: datetime | None = None
