"""Configuration management for dockertest.

Settings are read from the process environment (and an optional ``.env``
file) every time a ``Settings`` instance is constructed. A run resolves its
settings once, at the start of the run.

Usage:
    from dockertest.config import settings

    settings.dockertest_prune
    settings.logging.log_level
"""

from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import LoggingConfig


class Settings(BaseSettings):
    """dockertest settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Teardown
    dockertest_prune: str = Field(
        default="always",
        description="Prune strategy: always, never, running_on_failure, stop_on_failure",
    )

    # Set by the user when the test process itself runs inside a container
    # that must join the per-run network.
    dockertest_container_id_inject_to_network: Optional[str] = Field(default=None)

    # Naming
    dockertest_namespace: str = Field(default="dockertest-rs", min_length=1)
    dockertest_network_prefix: str = Field(default="dockertest-rs", min_length=1)

    # Engine
    engine_timeout_seconds: int = Field(default=120, ge=1, le=3600)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @validator("dockertest_prune")
    def normalize_prune(cls, v):
        """Lowercase the prune selector; unknown values fall back to 'always' at teardown."""
        return v.strip().lower()

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only console and json renderers are supported."""
        if v.lower() not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v.lower()

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
        )


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "LoggingConfig",
]
