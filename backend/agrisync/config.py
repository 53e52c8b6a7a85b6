"""
Application settings.

Values come from environment variables (or a local .env file). DATABASE_URL
keeps its plain name so existing deployments keep working.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGRISYNC_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = Field(default="agrisync API")
    app_version: str = Field(default="0.1.0")

    database_url: Optional[str] = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="SQLAlchemy URL, e.g. postgresql+psycopg://...; SQLite file when unset",
    )
    data_dir: Optional[Path] = Field(default=None, description="Directory for the SQLite file")

    sync_push_max_items: int = Field(default=500, ge=1)
    sync_lock_retries: int = Field(default=3, ge=1)
    tracking_batch_max: int = Field(default=100, ge=1)

    log_level: str = Field(default="INFO")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        data_dir = self.data_dir
        if data_dir is None:
            container_data = Path("/app/data")
            if container_data.exists():
                data_dir = container_data
            else:
                # backend/agrisync/config.py -> <repo root>/data
                data_dir = Path(__file__).resolve().parents[2] / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{data_dir / 'app.db'}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
