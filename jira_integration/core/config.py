"""Configuration settings for the Jira integration service."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Service Configuration
    service_name: str = "jira-integration-service"
    port: int = 8000
    environment: str = "development"
    debug: bool = False

    # Security
    encryption_key: str
    encryption_salt: str = "jira-integration-credentials"

    # Database
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "qualix_jira"
    redis_url: str = "redis://localhost:6379"

    # Auth Service
    auth_service_url: str = "http://localhost:8001"

    # Jira handshake timeouts (seconds)
    reachability_timeout: float = 10.0
    server_info_timeout: float = 10.0
    validation_timeout: float = 15.0

    # Jira client
    client_timeout: float = 30.0
    client_max_attempts: int = 3

    # Webhook Configuration
    webhook_base_url: str = "http://localhost:8000/api/v1/webhooks/jira"
    webhook_events: list[str] = [
        "jira:issue_created",
        "jira:issue_updated",
        "jira:issue_deleted",
    ]
    webhook_workers: int = 4
    webhook_queue_size: int = 1000
    webhook_failure_history: int = 100
    webhook_recovery_batch: int = 500

    # Rate Limiting
    rate_limit_enabled: bool = False
    rate_limit_default: int = 100
    rate_limit_window: int = 60

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
