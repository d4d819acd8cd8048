from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Classbook'
    app_env: str = 'local'
    database_url: str = 'sqlite:///./classbook.db'
    app_base_url: str = 'http://127.0.0.1:8000'
    auth_secret: str = 'change-me'
    auth_session_expiry_hours: int = Field(default=12, ge=1)

    # Fallbacks for organizations without a stored setting.
    default_max_concurrent_students: int = Field(default=5, ge=1)
    default_time_slot_interval_minutes: int = Field(default=30, ge=5, le=60)

    registration_open_next_month_day: int = Field(default=25, ge=1, le=28)
    student_conflict_check: bool = True

    cache_backend: Literal['memory', 'redis'] = 'memory'
    cache_redis_url: str | None = None
    default_cache_ttl: int = Field(default=60, ge=1)
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
