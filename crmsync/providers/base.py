"""Provider target variants and the shared send result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

MESSAGE_TYPES = ("text", "image", "audio", "video", "document")


@dataclass(frozen=True)
class GatewayTarget:
    """Self-hosted Evolution gateway instance (``apikey`` header auth)."""

    api_url: str
    api_key: str
    instance_name: str

    kind = "gateway"


@dataclass(frozen=True)
class HostedApiTarget:
    """Hosted W-API instance (Bearer token auth)."""

    instance_id: str
    token: str

    kind = "hosted"


ProviderTarget = Union[GatewayTarget, HostedApiTarget]


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def error_message(data: Any, default: str) -> str:
    """Pick a human readable error out of a provider response body."""
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, list) and value:
                return str(value[0])
    if isinstance(data, str) and data.strip():
        return data.strip()[:300]
    return default
