"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Queue engine
    queue_tick_interval_ms: int = 100
    queue_backoff_base_ms: int = 1000
    queue_shutdown_timeout_ms: int = 30_000
    default_job_timeout_ms: int = 30_000
    default_max_attempts: int = 3

    # Well-known queue concurrency limits
    queue_default_concurrency: int = 5
    queue_email_concurrency: int = 3
    queue_notifications_concurrency: int = 10
    queue_exports_concurrency: int = 2

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Webhook delivery
    webhook_user_agent: str = "jobqueue-webhook/1.0"
    webhook_timeout_seconds: float = 30.0
    webhook_default_secret: str | None = None

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "jobqueue"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
