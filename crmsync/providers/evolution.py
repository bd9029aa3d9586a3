"""Evolution API (self-hosted gateway) send adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import settings
from ..http.retry import fetch_json_with_retry
from .base import GatewayTarget, SendResult, error_message

logger = logging.getLogger(__name__)


def build_request(
    target: GatewayTarget,
    phone: str,
    content: str | None,
    message_type: str,
    media_url: str | None,
) -> tuple[str, dict[str, Any]]:
    """Return (url, body) for a send call."""
    base = target.api_url.rstrip("/")
    instance = target.instance_name

    if message_type == "text":
        return f"{base}/message/sendText/{instance}", {"number": phone, "text": content or ""}

    if message_type == "audio":
        return (
            f"{base}/message/sendWhatsAppAudio/{instance}",
            {"number": phone, "audio": media_url, "delay": 1200},
        )

    body: dict[str, Any] = {"number": phone, "mediatype": message_type, "media": media_url}
    if content:
        body["caption"] = content
    return f"{base}/message/sendMedia/{instance}", body


async def send(
    target: GatewayTarget,
    phone: str,
    content: str | None,
    message_type: str = "text",
    media_url: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    url, body = build_request(target, phone, content, message_type, media_url)
    try:
        resp = await fetch_json_with_retry(
            url,
            method="POST",
            headers={"Content-Type": "application/json", "apikey": target.api_key},
            json=body,
            retries=settings.provider_send_retries,
            label="evolution-send",
            client=client,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("Evolution send failed for %s: %s", target.instance_name, exc)
        return SendResult(success=False, error=str(exc))

    if not resp.ok:
        return SendResult(success=False, error=error_message(resp.data, "Failed to send message"))

    message_id = None
    if isinstance(resp.data, dict):
        key = resp.data.get("key")
        if isinstance(key, dict):
            message_id = key.get("id")
    return SendResult(success=True, message_id=message_id)
