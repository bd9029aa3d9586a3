"""Sync service configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


class SyncSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///crmsync.db"
    echo_sql: bool = False
    app_title: str = "CRM Sync"
    log_level: str = "INFO"
    timezone: str = "America/Sao_Paulo"
    tenant_header: str = "X-Organization-Id"

    # Outbound HTTP (resilient fetch)
    http_timeout_seconds: float = 30.0
    http_retries: int = 3
    http_base_delay_seconds: float = 1.0
    http_max_delay_seconds: float = 10.0

    # AASP intimações
    aasp_base_url: str = "https://intimacaoapi.aasp.org.br"
    # auto, root_array, intimacoes_key, lowercase_key, items_key
    aasp_response_shape: str = "auto"
    aasp_sync_interval_seconds: int = 3600

    # WhatsApp hosted provider (W-API)
    wapi_base_url: str = "https://api.w-api.app/v1"
    provider_send_retries: int = 2

    # Asaas billing
    asaas_production_url: str = "https://api.asaas.com/v3"
    asaas_sandbox_url: str = "https://sandbox.asaas.com/api/v3"
    asaas_page_size: int = 100
    asaas_page_delay_seconds: float = 0.2
    asaas_sync_hour: int = 2
    asaas_status_check_hour: int = 8

    # Scheduled messages
    scheduled_messages_interval_seconds: int = 60
    scheduled_messages_batch_size: int = 50
    scheduled_messages_send_delay_seconds: float = 0.5

    # Secretary digest
    secretary_digest_interval_seconds: int = 3600

    # Tenant driver
    driver_concurrency: int = 1
    driver_tenant_timeout_seconds: float = 300.0

    # Background scheduler
    scheduler_enabled: bool = True
    scheduler_poll_interval_seconds: float = 30.0

    model_config = {"env_prefix": "CRMSYNC_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = SyncSettings()
