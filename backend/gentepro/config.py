"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "GentePRO"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api/v1"

    # Database (PostgreSQL)
    database_url: str

    # JWT
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # Redis (for ARQ background jobs)
    redis_url: str = "redis://localhost:6379"

    # SLA monitoring
    sla_check_minute: int = 0
    sla_escalation_role: str = "gestor"
    # Assignments evaluated per commit; each commit releases their row locks
    sla_commit_batch_size: int = 50

    # Outbound webhooks
    webhook_timeout_seconds: float = 10.0
    webhook_backoff_base_seconds: int = 30
    webhook_backoff_max_seconds: int = 3600

    # Secret store for webhook header references, e.g. {"API_KEY": "..."}
    webhook_secrets: Dict[str, str] = {}

    # Notification gateway (email/push/SMS delivery lives behind it)
    notification_gateway_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0
    notification_max_tries: int = 5

    # Pending automation executions older than this are re-queued by the sweep
    execution_requeue_grace_minutes: int = 10

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:5000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
