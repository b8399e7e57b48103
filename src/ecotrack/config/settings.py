"""Application settings loaded from environment."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed settings for the core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pghost: Optional[str] = Field(default=None, alias="PGHOST")
    pgport: int = Field(default=5432, alias="PGPORT")
    pguser: Optional[str] = Field(default=None, alias="PGUSER")
    pgpassword: Optional[str] = Field(default=None, alias="PGPASSWORD")
    pgdatabase: Optional[str] = Field(default=None, alias="PGDATABASE")

    # Image storage (public object URLs)
    supabase_url: Optional[str] = Field(default=None, alias="SUPABASE_URL")
    image_bucket: str = Field(default="images", alias="IMAGE_BUCKET")

    # Notifications
    notify_webhook_url: Optional[str] = Field(default=None, alias="NOTIFY_WEBHOOK_URL")
    notify_timeout_seconds: int = Field(default=10, alias="NOTIFY_TIMEOUT_SECONDS")
    notify_max_retries: int = Field(default=3, alias="NOTIFY_MAX_RETRIES")

    # Rewards and dispatch
    reward_max_retries: int = Field(default=3, alias="REWARD_MAX_RETRIES")
    agent_points_per_collection: int = Field(default=10, alias="AGENT_POINTS_PER_COLLECTION")

    # Leaderboard
    leaderboard_refresh_seconds: int = Field(default=30, alias="LEADERBOARD_REFRESH_SECONDS")
    leaderboard_default_limit: int = Field(default=10, alias="LEADERBOARD_DEFAULT_LIMIT")

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    run_env: str = Field(default="local", alias="RUN_ENV")

    def get_database_url(self) -> str:
        """Return a usable database URL or raise."""
        if self.database_url:
            return self.database_url

        if all([self.pghost, self.pguser, self.pgpassword, self.pgdatabase]):
            return (
                "postgresql://"
                f"{self.pguser}:{self.pgpassword}@{self.pghost}:{self.pgport}/"
                f"{self.pgdatabase}"
            )

        raise ValueError("DATABASE_URL or PG* env vars must be set")
