"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Centralized environment configuration for the sync engine."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    db_path: Path = Field(
        default=Path("data/rss_sync.sqlite"), validation_alias="SYNC_DB_PATH"
    )
    interval_minutes: float = Field(
        default=5, ge=1, validation_alias="SYNC_INTERVAL_MINUTES"
    )
    min_changes: int = Field(default=5, ge=1, validation_alias="SYNC_MIN_CHANGES")
    batch_size: int = Field(
        default=100, ge=1, le=1000, validation_alias="SYNC_BATCH_SIZE"
    )
    max_retries: int = Field(default=3, ge=1, validation_alias="SYNC_MAX_RETRIES")
    staleness_minutes: float = Field(
        default=15, gt=0, validation_alias="SYNC_STALENESS_MINUTES"
    )
    http_timeout_seconds: float = Field(
        default=30.0, ge=1.0, le=300.0, validation_alias="SYNC_HTTP_TIMEOUT_SECONDS"
    )
    pull_max_articles: int = Field(
        default=300, ge=1, validation_alias="SYNC_PULL_MAX_ARTICLES"
    )
    daily_api_limit: int = Field(
        default=100, ge=1, validation_alias="SYNC_DAILY_API_LIMIT"
    )
    conflict_log_path: Path | None = Field(
        default=None, validation_alias="SYNC_CONFLICT_LOG_PATH"
    )

    inoreader_api_base: str = Field(
        default="https://www.inoreader.com/reader/api/0",
        validation_alias="INOREADER_API_BASE",
    )
    inoreader_access_token: str | None = Field(
        default=None, validation_alias="INOREADER_ACCESS_TOKEN"
    )
    inoreader_refresh_token: str | None = Field(
        default=None, validation_alias="INOREADER_REFRESH_TOKEN"
    )
    inoreader_client_id: str | None = Field(
        default=None, validation_alias="INOREADER_CLIENT_ID"
    )
    inoreader_client_secret: str | None = Field(
        default=None, validation_alias="INOREADER_CLIENT_SECRET"
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    @property
    def interval_seconds(self) -> float:
        """Scheduler interval in seconds."""
        return self.interval_minutes * 60

    @property
    def staleness_seconds(self) -> float:
        """Staleness window in seconds."""
        return self.staleness_minutes * 60


def get_settings() -> SyncSettings:
    """Get a settings instance."""
    return SyncSettings()
