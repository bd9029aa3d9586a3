"""WhatsApp provider adapters behind one send interface."""

from __future__ import annotations

import httpx

from . import evolution, wapi
from .base import (
    MESSAGE_TYPES,
    GatewayTarget,
    HostedApiTarget,
    ProviderTarget,
    SendResult,
)


async def send_message(
    target: ProviderTarget,
    phone: str,
    content: str | None,
    message_type: str = "text",
    media_url: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Send a message through whichever provider ``target`` belongs to."""
    if isinstance(target, HostedApiTarget):
        return await wapi.send(target, phone, content, message_type, media_url, client=client)
    if isinstance(target, GatewayTarget):
        return await evolution.send(target, phone, content, message_type, media_url, client=client)
    raise TypeError(f"Unsupported provider target: {type(target).__name__}")


__all__ = [
    "MESSAGE_TYPES",
    "GatewayTarget",
    "HostedApiTarget",
    "ProviderTarget",
    "SendResult",
    "send_message",
]
