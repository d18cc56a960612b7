"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tasklist_api.core.models import GroupDimension

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "tasklist-api"
    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = ""
    search_limit: int = Field(default=15, ge=1, le=100)
    default_group: GroupDimension = GroupDimension.STATUS

    model_config = SettingsConfigDict(
        env_prefix="TASKLIST_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
