"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Habitmap Backend"
    debug: bool = False
    log_level: str = "INFO"
    expansion_log_level: str | None = None
    local_timezone: str = "UTC"
    # 0 = Monday ... 6 = Sunday, same numbering as date.weekday()
    first_weekday: int = Field(default=0, ge=0, le=6)
    day_horizon_days: int = Field(default=365, ge=1)
    week_horizon_weeks: int = Field(default=52, ge=1)
    month_horizon_months: int = Field(default=24, ge=1)
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "habitmap"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
