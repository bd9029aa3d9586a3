"""Resilient outbound HTTP with bounded exponential backoff.

Server errors (5xx) and transport failures are retried; client errors
(4xx) are returned immediately. Once the retry budget is spent the last
5xx response is returned, or the last transport error re-raised, so
callers must check the status themselves.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


@dataclass(frozen=True)
class JsonResponse:
    ok: bool
    status: int
    data: Any


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** attempt), max_delay)


async def fetch_with_retry(
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json: Any = None,
    retries: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    label: str = "fetch",
    client: httpx.AsyncClient | None = None,
) -> httpx.Response:
    """Perform one HTTP call, retrying 5xx and transport errors."""
    retries = settings.http_retries if retries is None else max(0, int(retries))
    base_delay = settings.http_base_delay_seconds if base_delay is None else base_delay
    max_delay = settings.http_max_delay_seconds if max_delay is None else max_delay

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    try:
        attempt = 0
        while True:
            try:
                response = await client.request(
                    method, url, headers=headers, params=params, json=json
                )
            except RETRYABLE_ERRORS as exc:
                if attempt >= retries:
                    raise
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "[%s] Network error on attempt %d/%d: %s. Retrying in %.2fs",
                    label, attempt + 1, retries + 1, exc, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            if 500 <= response.status_code < 600 and attempt < retries:
                delay = backoff_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "[%s] Server error %d on attempt %d/%d. Retrying in %.2fs",
                    label, response.status_code, attempt + 1, retries + 1, delay,
                )
                await response.aclose()
                await asyncio.sleep(delay)
                attempt += 1
                continue

            return response
    finally:
        if owns_client:
            await client.aclose()


def _read_body(response: httpx.Response) -> Any:
    content_type = (response.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    try:
        return response.text
    except Exception:
        return None


async def fetch_json_with_retry(url: str, **kwargs: Any) -> JsonResponse:
    """Like :func:`fetch_with_retry` but returns ``JsonResponse(ok, status, data)``.

    ``data`` is parsed JSON when the response advertises it, the body text
    otherwise, and ``None`` when the body can't be read.
    """
    response = await fetch_with_retry(url, **kwargs)
    return JsonResponse(
        ok=response.is_success,
        status=response.status_code,
        data=_read_body(response),
    )
