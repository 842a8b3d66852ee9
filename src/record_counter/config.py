from __future__ import annotations

from pydantic import ConfigDict, SecretStr, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Dataverse connection
    dataverse_url: str = ""
    dataverse_api_version: str = "9.2"
    dataverse_access_token: SecretStr = SecretStr("")

    # Transport
    request_timeout_seconds: float = 30.0
    transport_max_attempts: int = 3

    # Counting
    exact_count_page_size: int = 5000
    exact_count_max_pages: int = 1000
    max_repeated_cursors: int = 3

    # Metadata cache
    stored_query_cache_ttl_seconds: int = 3600

    # App
    log_level: str = "INFO"

    @field_validator("dataverse_api_version", mode="before")
    @classmethod
    def normalize_api_version(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().lstrip("vV")
        return v

    @field_validator("dataverse_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v


def get_settings() -> Settings:
    return Settings()
