"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    storage_backend: str = "mongo"  # "mongo" or "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "docuflow_dev"

    # Authentication (HS256 bearer tokens issued by the platform login)
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 480

    # Workflow policy
    prevent_self_approval: bool = True
    conflict_retry_attempts: int = 3
    conflict_retry_backoff_ms: int = 50

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Notification outbox dispatcher
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 10
    notification_max_retries: int = 5
    notification_lock_duration_seconds: int = 60
    notification_batch_size: int = 50
    # Empty means notifications are delivered to the log only
    notification_webhook_url: str = ""
    notification_webhook_timeout_seconds: float = 10.0

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def uses_memory_storage(self) -> bool:
        """In-memory storage is used for local runs and tests"""
        return self.storage_backend.lower() == "memory"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
