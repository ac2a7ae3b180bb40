# FILE: attempt_engine/config.py
"""
Configuration management for the attempt engine
Loads from environment variables with validation
"""
from functools import lru_cache
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Backend server
    backend_host: str = Field(default="0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(default=8000, alias="BACKEND_PORT")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Storage
    storage_backend: str = Field(
        default="json",
        alias="STORAGE_BACKEND",
        description="json (JSONL files under DATA_DIR) or memory (process-local, for demos/tests)"
    )
    data_dir: str = Field(default="./data", alias="DATA_DIR")
    attempts_dir: str = Field(default="./data/attempts", alias="ATTEMPTS_DIR")
    activities_dir: str = Field(default="./data/activities", alias="ACTIVITIES_DIR")
    logs_dir: str = Field(default="./logs", alias="LOGS_DIR")

    # Sessions
    session_header: str = Field(
        default="X-User-Id",
        alias="SESSION_HEADER",
        description="Header carrying the authenticated user id, set by the upstream auth proxy"
    )

    # Telemetry
    telemetry_enabled: bool = Field(default=True, alias="TELEMETRY_ENABLED")
    telemetry_rotation: str = Field(default="daily", alias="TELEMETRY_ROTATION")
    telemetry_timezone: str = Field(default="UTC", alias="TELEMETRY_TIMEZONE")
    telemetry_retention_days: int = Field(default=90, alias="TELEMETRY_RETENTION_DAYS")

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
