"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from anesguardian.sanitization import DEFAULT_ALLOWED_FILE_TYPES, DEFAULT_MAX_FILE_SIZE


class Settings(BaseSettings):
    """Runtime settings for the AnesGuardian API."""

    app_name: str = "AnesGuardian"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    max_request_body_bytes: int = 1_048_576
    max_payload_depth: int = 5
    allowed_origins: str | None = None
    allowed_upload_types: list[str] = list(DEFAULT_ALLOWED_FILE_TYPES)
    max_upload_bytes: int = DEFAULT_MAX_FILE_SIZE
    rate_limit_backend: str = "auto"
    redis_url: str | None = None
    rate_limit_prefix: str = "anesguardian:rate_limit"
    api_rate_limit: int = 100
    api_rate_limit_window_seconds: int = 15 * 60
    upload_rate_limit: int = 5
    upload_rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings so env parsing only happens once."""

    return Settings()
