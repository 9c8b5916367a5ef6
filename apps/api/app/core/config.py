from functools import lru_cache
from typing import List
from urllib.parse import urlencode

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    api_v1_prefix: str = "/api/v1"
    project_name: str = "PayBridge API"
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build the gateway callback URL",
    )
    cors_origins: List[AnyHttpUrl] = []

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Render logs as JSON instead of console text")

    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy async connection string for the primary Postgres database",
    )
    database_pool_timeout_seconds: float = Field(default=10.0, gt=0)
    database_echo: bool = False

    redis_url: str | None = Field(
        default=None,
        description="Redis connection string used as the Celery broker",
    )
    celery_broker_url: str | None = Field(
        default=None,
        description="Broker URL for Celery workers; falls back to Redis when unset",
    )
    celery_result_backend: str | None = Field(
        default=None,
        description="Result backend for Celery; defaults to the broker when omitted",
    )

    gateway_base_url: str = Field(default="https://app.pakasir.com")
    gateway_project: str | None = None
    gateway_api_key: str | None = None
    gateway_callback_token: str | None = Field(
        default=None,
        description="Shared secret the gateway must echo in the callback query string",
    )
    gateway_timeout_seconds: float = Field(default=15.0, gt=0)

    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    webhook_max_attempts: int = Field(default=3, ge=1, le=10)
    webhook_backoff_base_seconds: float = Field(default=0.3, ge=0)
    webhook_user_agent: str = "PayBridge-Webhooks/0.1"

    idempotency_lease_seconds: int = Field(
        default=120,
        ge=1,
        description="How long an unfinished idempotent request blocks its key before it can be reclaimed",
    )
    reconcile_max_cas_attempts: int = Field(default=3, ge=1)

    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_create_per_window: int = Field(default=60, ge=1)
    rate_limit_list_per_window: int = Field(default=120, ge=1)
    rate_limit_detail_per_window: int = Field(default=120, ge=1)
    rate_limit_sync_per_window: int = Field(default=60, ge=1)
    rate_limit_balance_per_window: int = Field(default=120, ge=1)
    rate_limit_withdrawal_per_window: int = Field(default=10, ge=1)
    rate_limit_webhook_logs_per_window: int = Field(default=120, ge=1)

    platform_fee_idr: int = Field(
        default=0,
        ge=0,
        description="Flat platform cut taken out of each transaction fee",
    )
    balance_maturity_hours: int = Field(default=24, ge=0)
    withdrawal_min_amount_idr: int = Field(default=100_000, ge=0)
    withdrawal_fee_idr: int = Field(default=2_500, ge=0)

    reconcile_poll_interval_seconds: int = Field(default=300, ge=10)
    reconcile_poll_min_age_seconds: int = Field(
        default=120,
        ge=0,
        description="Only pending transactions untouched for at least this long are polled",
    )
    reconcile_poll_batch_size: int = Field(default=100, ge=1, le=1000)

    enable_prometheus_metrics: bool = Field(
        default=True, description="Expose Prometheus metrics endpoint when true"
    )
    prometheus_metrics_path: str = Field(
        default="/metrics/prometheus",
        description="Path where scraped Prometheus metrics are served",
    )
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None,
        description="OTLP HTTP endpoint for exporting traces",
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None,
        description="Comma separated key=value pairs added to OTLP requests",
    )
    otel_service_name: str | None = Field(
        default=None, description="Optional override for OpenTelemetry service.name"
    )

    worker_prometheus_port: int | None = Field(
        default=None,
        description="Optional port that exposes worker Prometheus metrics",
    )
    worker_prometheus_host: str = Field(
        default="0.0.0.0",
        description="Host interface used for worker Prometheus exporter",
    )

    @property
    def gateway_configured(self) -> bool:
        return bool(self.gateway_project and self.gateway_api_key)

    @property
    def callback_url(self) -> str:
        base = self.app_base_url.rstrip("/")
        url = f"{base}{self.api_v1_prefix}/internal/gateway/callback"
        if self.gateway_callback_token:
            url = f"{url}?{urlencode({'token': self.gateway_callback_token})}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
