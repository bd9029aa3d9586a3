"""Sync models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, TenantMixin
from .organization import Organization
from .connection import Connection, PROVIDER_EVOLUTION, PROVIDER_WAPI
from .aasp import AASPConfig, AASPIntimacao, SyncLog
from .messaging import Conversation, ChatMessage, ScheduledMessage, UserAlert
from .secretary import GroupSecretaryConfig, GroupSecretaryLog, CRMTask
from .asaas import AsaasIntegration, AsaasCustomer, AsaasPayment

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "TenantMixin",
    "Organization",
    "Connection",
    "PROVIDER_EVOLUTION",
    "PROVIDER_WAPI",
    "AASPConfig",
    "AASPIntimacao",
    "SyncLog",
    "Conversation",
    "ChatMessage",
    "ScheduledMessage",
    "UserAlert",
    "GroupSecretaryConfig",
    "GroupSecretaryLog",
    "CRMTask",
    "AsaasIntegration",
    "AsaasCustomer",
    "AsaasPayment",
]
