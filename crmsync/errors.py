"""Exception types shared across sync jobs and providers."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync and dispatch failures."""


class UpstreamError(SyncError):
    """Upstream API answered with a non-success status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None, detail=None):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)


class ProviderConfigError(SyncError):
    """A connection is missing the fields its provider variant requires."""


class ConnectionUnavailable(SyncError):
    """No connected WhatsApp account could be resolved for a tenant."""
