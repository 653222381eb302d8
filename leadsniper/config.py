from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration, read from the environment and an optional ``.env`` file."""

    app_name: str = "LeadSniper"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Research requests
    discovery_webhook_url: str | None = None
    discovery_timeout_seconds: float = 600.0
    research_default_state: str = "SP"
    research_default_tone: str = "profissional"
    research_default_quantity: int = 20
    research_min_quantity: int = 5
    research_max_quantity: int = 50

    # Marketing verification
    verification_webhook_url: str | None = None
    verification_timeout_seconds: float = 60.0
    verification_max_attempts: int = 2
    batch_verification_delay_seconds: float = 0.5

    # AI lead analysis
    analysis_webhook_url: str | None = None
    analysis_timeout_seconds: float = 120.0
    pipeline_analysis_delay_seconds: float = 1.0

    # WhatsApp gateway
    whatsapp_api_base_url: str | None = None
    whatsapp_instances: dict[str, str] = {}  # owner_id -> instance name
    whatsapp_timeout_seconds: float = 30.0
    whatsapp_default_country_code: str = "55"

    # Persistence; leads are kept in memory when no URL is set
    database_url: str | None = None
    auto_create_schema: bool = False
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    cors_origins: list[str] = []
    sentry_dsn: str | None = None

    metrics_disable: bool = False
    metrics_backend: str = "stdout"  # or "statsd"
    metrics_namespace: str = "leadsniper"
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    model_config = ConfigDict(env_file=".env", case_sensitive=False)

    @property
    def research_quantity_bounds(self) -> tuple[int, int]:
        """Return (min, max) quantity, tolerating an inverted configuration."""
        low = max(self.research_min_quantity, 1)
        return low, max(self.research_max_quantity, low)


settings = Settings()
