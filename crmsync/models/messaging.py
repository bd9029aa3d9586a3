"""Conversation, chat message, scheduled message and user alert models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin
from .connection import Connection


class Conversation(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "conversation"

    connection_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("connection.id", ondelete="SET NULL"), default=None, index=True
    )
    remote_jid: Mapped[str] = mapped_column(String(255))
    contact_name: Mapped[str | None] = mapped_column(String(255), default=None)
    contact_phone: Mapped[str | None] = mapped_column(String(50), default=None)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)


class ChatMessage(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "chat_message"
    __table_args__ = (
        Index("ix_chat_message_conversation", "conversation_id", "timestamp"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversation.id", ondelete="CASCADE")
    )
    message_id: Mapped[str | None] = mapped_column(String(255), default=None)
    from_me: Mapped[bool] = mapped_column(Boolean, default=False)
    sender_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    content: Mapped[str | None] = mapped_column(Text, default=None)
    message_type: Mapped[str] = mapped_column(String(20), default="text")
    media_url: Mapped[str | None] = mapped_column(Text, default=None)
    media_mimetype: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str] = mapped_column(String(20), default="sent")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ScheduledMessage(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scheduled_message"
    __table_args__ = (
        Index("ix_scheduled_message_due", "status", "scheduled_at"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversation.id", ondelete="CASCADE")
    )
    connection_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("connection.id", ondelete="CASCADE")
    )
    sender_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    content: Mapped[str | None] = mapped_column(Text, default=None)
    message_type: Mapped[str] = mapped_column(String(20), default="text")
    media_url: Mapped[str | None] = mapped_column(Text, default=None)
    media_mimetype: Mapped[str | None] = mapped_column(String(100), default=None)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    timezone: Mapped[str] = mapped_column(String(50), default="America/Sao_Paulo")
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending/sending/sent/failed
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    error_message: Mapped[str | None] = mapped_column(Text, default=None)

    conversation: Mapped[Conversation] = relationship()
    connection: Mapped[Connection] = relationship()

    def __repr__(self) -> str:
        return f"<ScheduledMessage {self.status} at={self.scheduled_at}>"


class UserAlert(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "user_alert"

    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None, index=True)
    type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str | None] = mapped_column(Text, default=None)
    metadata_json: Mapped[dict | None] = mapped_column(JSON, default=None)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
