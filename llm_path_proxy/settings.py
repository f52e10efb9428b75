from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    backend_timeout_seconds: float = 300.0
    backend_connect_timeout_seconds: float | None = None
    backend_registry_path: str | None = None
    max_request_body_bytes: int = 50 * 1024 * 1024
    max_connections: int = 512
    max_keepalive_connections: int = 128
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
