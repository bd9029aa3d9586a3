"""WhatsApp connection model.

A connection is either a self-hosted Evolution gateway or a hosted W-API
instance. The ``provider`` column is the only discriminator; credentials
are never used to guess the variant.
"""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..errors import ProviderConfigError
from ..providers.base import GatewayTarget, HostedApiTarget, ProviderTarget
from .base import Base, UUIDMixin, TimestampMixin, TenantMixin

PROVIDER_EVOLUTION = "evolution"
PROVIDER_WAPI = "wapi"


class Connection(UUIDMixin, TimestampMixin, TenantMixin, Base):
    __tablename__ = "connection"

    name: Mapped[str] = mapped_column(String(255))
    provider: Mapped[str] = mapped_column(String(20), default=PROVIDER_EVOLUTION)
    status: Mapped[str] = mapped_column(String(50), default="disconnected", index=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), default=None)

    # Evolution gateway
    api_url: Mapped[str | None] = mapped_column(String(500), default=None)
    api_key: Mapped[str | None] = mapped_column(String(500), default=None)
    instance_name: Mapped[str | None] = mapped_column(String(255), default=None)

    # W-API
    instance_id: Mapped[str | None] = mapped_column(String(255), default=None)
    wapi_token: Mapped[str | None] = mapped_column(Text, default=None)

    @property
    def is_connected(self) -> bool:
        return self.status == "connected"

    def to_target(self) -> ProviderTarget:
        """Build the provider-specific send target for this connection."""
        if self.provider == PROVIDER_WAPI:
            if not self.instance_id or not self.wapi_token:
                raise ProviderConfigError(
                    f"Connection {self.id} (wapi) requires instance_id and wapi_token"
                )
            return HostedApiTarget(instance_id=self.instance_id, token=self.wapi_token)

        if self.provider == PROVIDER_EVOLUTION:
            if not self.api_url or not self.api_key or not self.instance_name:
                raise ProviderConfigError(
                    f"Connection {self.id} (evolution) requires api_url, api_key and instance_name"
                )
            return GatewayTarget(
                api_url=self.api_url,
                api_key=self.api_key,
                instance_name=self.instance_name,
            )

        raise ProviderConfigError(f"Unknown provider {self.provider!r} on connection {self.id}")

    def __repr__(self) -> str:
        return f"<Connection {self.name!r} {self.provider} {self.status}>"
