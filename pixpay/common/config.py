"""Central environment-driven settings for the payment orchestrator.

The process loads this once at startup. Provider credentials, the public
callback base URL and storage backends are controlled by environment variables
(see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pixpay-orchestrator"
    log_level: str = "INFO"
    provider_base_url: str = "https://sandbox-api-baasic.transfero.com"
    provider_client_id: str = ""
    provider_client_secret: str = ""
    provider_timeout_seconds: float = 10.0
    token_default_ttl_seconds: int = 300
    token_refresh_skew_seconds: int = 30
    public_base_url: str = "http://localhost:8000"
    webhook_event_name: str = "depositorder.created"
    webhook_secret: str | None = None
    session_backend: str = "memory"
    redis_url: str = "redis://redis:6379/0"
    session_max_entries: int = 10_000
    session_ttl_seconds: int | None = 86400
    idempotency_ttl_seconds: int = 86400
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
