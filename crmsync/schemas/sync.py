"""Sync result schemas."""

from __future__ import annotations

from pydantic import BaseModel


class SyncResult(BaseModel):
    success: bool
    new_count: int = 0
    total: int = 0
    insert_errors: int = 0
    notified: bool = False
    error: str | None = None


class DispatchStats(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class AsaasSyncStats(BaseModel):
    today: int = 0
    tomorrow: int = 0
    day_after: int = 0
    overdue: int = 0
    cleaned_up: int = 0

    @property
    def total(self) -> int:
        return self.today + self.tomorrow + self.day_after + self.overdue


class AsaasStatusStats(BaseModel):
    checked: int = 0
    updated: int = 0
    newly_paid: int = 0
    errors: int = 0
