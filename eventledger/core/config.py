from functools import lru_cache
from typing import Any, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Document store
    store_backend: Literal["mongo", "memory"] = Field(default="mongo", alias="STORE_BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="eventledger", alias="MONGODB_DB_NAME")

    # Redis (worker queue + submit rate limit)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Lifecycle sweep
    lifecycle_job_secret: str = Field(default="", alias="LIFECYCLE_JOB_SECRET")
    lifecycle_sweep_interval_minutes: int = Field(default=5, ge=1, le=60, alias="LIFECYCLE_SWEEP_INTERVAL_MINUTES")
    cleanup_after_hours: int = Field(default=24, ge=0, alias="CLEANUP_AFTER_HOURS")

    # Attendance codes
    code_generation_max_attempts: int = Field(default=10, ge=1, alias="CODE_GENERATION_MAX_ATTEMPTS")
    attendance_submit_limit_per_minute: int = Field(default=10, ge=0, alias="ATTENDANCE_SUBMIT_LIMIT_PER_MINUTE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
