"""
tracelog.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the log sink and the API.
- Build the `LogConfig` consumed by `LogSink`.
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tracelog.observability.logging import LogConfig


class Settings(BaseSettings):
    """
    - Strict env-driven configuration (TRACELOG_ prefix)
    - Defaults safe for local dev: text logs on stdout at info level
    - Unrecognized log_format/log_level values degrade instead of failing
    """

    model_config = SettingsConfigDict(env_prefix="TRACELOG_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "tracelog"

    # Logging. Plain strings: the sink falls back to text/info on unknown values.
    log_format: str = "text"
    log_level: str = "info"
    log_file: str = ""
    log_max_size: int = Field(default=100, ge=0)  # megabytes
    log_max_backups: int = Field(default=0, ge=0)  # 0 keeps all
    log_max_age: int = Field(default=0, ge=0)  # days, 0 disables age pruning
    log_compress: bool = True
    log_async: bool = False

    trace_header: str = "X-Trace-ID"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    def log_config(self) -> LogConfig:
        return LogConfig(
            format=self.log_format,
            level=self.log_level,
            destination=self.log_file,
            max_size=self.log_max_size,
            max_backups=self.log_max_backups,
            max_age=self.log_max_age,
            compress=self.log_compress,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Settings stay free of logging side effects; the app factory owns sink creation.
