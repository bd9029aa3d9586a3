"""Group secretary models used by the daily digest."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class GroupSecretaryConfig(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "group_secretary_config"
    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_group_secretary_config_org"),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    daily_digest_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    daily_digest_hour: Mapped[int] = mapped_column(Integer, default=8)
    notify_external_phone: Mapped[str | None] = mapped_column(String(50), default=None)
    default_connection_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("connection.id", ondelete="SET NULL"), default=None, nullable=True
    )
    last_digest_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)


class GroupSecretaryLog(UUIDMixin, TimestampMixin, TenantMixin, Base):
    """One detection made by the group secretary."""

    __tablename__ = "group_secretary_log"

    matched_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    matched_user_name: Mapped[str | None] = mapped_column(String(255), default=None)
    priority: Mapped[str | None] = mapped_column(String(20), default=None)  # low/normal/high/urgent
    sentiment: Mapped[str | None] = mapped_column(String(30), default=None)
    summary: Mapped[str | None] = mapped_column(Text, default=None)


class CRMTask(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "crm_task"

    title: Mapped[str] = mapped_column(String(255))
    source: Mapped[str | None] = mapped_column(String(50), default=None)
    status: Mapped[str] = mapped_column(String(20), default="pending")
