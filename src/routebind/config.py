"""Runtime settings loaded from the environment.

Every field can be overridden with a ``ROUTEBIND_``-prefixed environment
variable (``ROUTEBIND_PORT=9000``) or a ``.env`` file in the working
directory.
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ROUTEBIND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1)

    # Application
    debug: bool = False
    strict: bool = False

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        upper = v.upper()
        if upper not in logging.getLevelNamesMapping():
            raise ValueError(f"Invalid log_level {v!r}")
        return upper
