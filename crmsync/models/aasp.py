"""AASP intimação integration models."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class AASPConfig(UUIDMixin, TimestampMixin, TenantMixin, Base):
    """Per-tenant AASP settings. Deactivated via ``is_active``, never deleted."""

    __tablename__ = "aasp_config"
    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_aasp_config_org"),
    )

    api_token: Mapped[str] = mapped_column(Text)
    notify_phone: Mapped[str | None] = mapped_column(String(50), default=None)
    connection_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("connection.id", ondelete="SET NULL"), default=None, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)


class AASPIntimacao(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "aasp_intimacao"
    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_aasp_intimacao_org_external"),
        Index("ix_aasp_intimacao_org_read", "organization_id", "read"),
    )

    external_id: Mapped[str] = mapped_column(String(255))
    jornal: Mapped[str | None] = mapped_column(Text, default=None)
    data_publicacao: Mapped[date | None] = mapped_column(Date, default=None, index=True)
    data_disponibilizacao: Mapped[date | None] = mapped_column(Date, default=None)
    caderno: Mapped[str | None] = mapped_column(Text, default=None)
    pagina: Mapped[str | None] = mapped_column(Text, default=None)
    comarca: Mapped[str | None] = mapped_column(Text, default=None)
    vara: Mapped[str | None] = mapped_column(Text, default=None)
    processo: Mapped[str | None] = mapped_column(Text, default=None)
    tipo: Mapped[str | None] = mapped_column(Text, default=None)
    conteudo: Mapped[str | None] = mapped_column(Text, default=None)
    partes: Mapped[str | None] = mapped_column(Text, default=None)
    advogados: Mapped[str | None] = mapped_column(Text, default=None)
    # Full upstream payload, kept alongside the typed columns.
    raw_data: Mapped[dict | None] = mapped_column(JSON, default=None)
    notified: Mapped[bool] = mapped_column(Boolean, default=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False)


class SyncLog(UUIDMixin, TimestampMixin, TenantMixin, Base):
    """Append-only audit trail of sync attempts."""

    __tablename__ = "sync_log"
    __table_args__ = (
        Index("ix_sync_log_org_integration", "organization_id", "integration", "created_at"),
    )

    integration: Mapped[str] = mapped_column(String(50), default="aasp")
    level: Mapped[str] = mapped_column(String(10), default="info")  # info, warn, error
    event: Mapped[str] = mapped_column(String(100))
    payload: Mapped[dict | None] = mapped_column(JSON, default=None)
