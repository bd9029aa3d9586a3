"""W-API (hosted) send adapter."""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx

from ..config import settings
from ..http.retry import fetch_json_with_retry
from .base import HostedApiTarget, SendResult, error_message

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def clean_phone(phone: str) -> str:
    """Group JIDs are kept verbatim; individual numbers keep digits only."""
    if "@g.us" in phone:
        return phone
    return _NON_DIGITS.sub("", phone)


def document_filename(name: str | None, url: str | None) -> str:
    base = (name or "document").strip()[:80] or "document"
    if PurePosixPath(base).suffix:
        return base
    ext = ""
    if url:
        try:
            ext = PurePosixPath(urlparse(url).path).suffix
        except ValueError:
            ext = ""
    return f"{base}{ext or '.pdf'}"


def build_request(
    phone: str,
    content: str | None,
    message_type: str,
    media_url: str | None,
) -> tuple[str, dict[str, Any]]:
    """Return (endpoint, body) for a send call."""
    number = clean_phone(phone)

    if message_type == "image":
        return "send-image", {"phone": number, "image": media_url, "caption": content or ""}
    if message_type == "audio":
        return "send-audio", {"phone": number, "audio": media_url}
    if message_type == "video":
        return "send-video", {"phone": number, "video": media_url, "caption": content or ""}
    if message_type == "document":
        return "send-document", {
            "phone": number,
            "document": media_url,
            "fileName": document_filename(content, media_url),
        }
    return "send-text", {"phone": number, "message": content or ""}


async def send(
    target: HostedApiTarget,
    phone: str,
    content: str | None,
    message_type: str = "text",
    media_url: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    endpoint, body = build_request(phone, content, message_type, media_url)
    url = f"{settings.wapi_base_url.rstrip('/')}/message/{endpoint}"
    try:
        resp = await fetch_json_with_retry(
            url,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {target.token}",
            },
            params={"instanceId": target.instance_id},
            json=body,
            retries=settings.provider_send_retries,
            label="wapi-send",
            client=client,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("W-API send failed for %s: %s", target.instance_id, exc)
        return SendResult(success=False, error=str(exc))

    if not resp.ok:
        return SendResult(success=False, error=error_message(resp.data, "Failed to send message"))

    message_id = None
    if isinstance(resp.data, dict):
        key = resp.data.get("key")
        message_id = (
            resp.data.get("messageId")
            or resp.data.get("id")
            or (key.get("id") if isinstance(key, dict) else None)
        )
    return SendResult(success=True, message_id=message_id)
