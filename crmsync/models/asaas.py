"""Asaas billing integration models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin


class AsaasIntegration(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "asaas_integration"
    __table_args__ = (
        UniqueConstraint("organization_id", name="uq_asaas_integration_org"),
    )

    api_key: Mapped[str] = mapped_column(Text)
    environment: Mapped[str] = mapped_column(String(20), default="sandbox")  # production/sandbox
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # NULL counts as enabled.
    auto_sync_enabled: Mapped[bool | None] = mapped_column(Boolean, default=True, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)


class AsaasCustomer(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "asaas_customer"
    __table_args__ = (
        UniqueConstraint("organization_id", "asaas_id", name="uq_asaas_customer_org_asaas"),
    )

    asaas_id: Mapped[str] = mapped_column(String(100))
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    phone: Mapped[str | None] = mapped_column(String(50), default=None)


class AsaasPayment(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "asaas_payment"
    __table_args__ = (
        UniqueConstraint("organization_id", "asaas_id", name="uq_asaas_payment_org_asaas"),
    )

    asaas_id: Mapped[str] = mapped_column(String(100))
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("asaas_customer.id", ondelete="SET NULL"), default=None, nullable=True
    )
    asaas_customer_id: Mapped[str | None] = mapped_column(String(100), default=None)
    value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=None)
    net_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), default=None)
    due_date: Mapped[date | None] = mapped_column(Date, default=None, index=True)
    billing_type: Mapped[str | None] = mapped_column(String(30), default=None)
    status: Mapped[str | None] = mapped_column(String(30), default=None, index=True)
    invoice_url: Mapped[str | None] = mapped_column(Text, default=None)
    bank_slip_url: Mapped[str | None] = mapped_column(Text, default=None)
    pix_copy_paste: Mapped[str | None] = mapped_column(Text, default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    external_reference: Mapped[str | None] = mapped_column(String(255), default=None)
    confirmed_date: Mapped[date | None] = mapped_column(Date, default=None)
    payment_date: Mapped[date | None] = mapped_column(Date, default=None)
