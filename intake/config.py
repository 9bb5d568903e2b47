#!/usr/bin/env python3

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./intake.db"
    redis_url: str = "redis://localhost:6379/0"

    # Root directory every stored path (uploads, fiches, documents) is relative to
    file_storage_path: str

    # Nested archives deeper than this are reported and not unpacked
    max_archive_depth: int = 5

    # Comma-separated retry countdowns in seconds, e.g. "60,300,900"
    task_retry_delays: Optional[str] = None

    log_level: str = "INFO"

    @field_validator("max_archive_depth")
    @classmethod
    def validate_max_archive_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("MAX_ARCHIVE_DEPTH must be zero or positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL '{v}'")
        return level

    class Config:
        env_file = ".env"


settings = Settings()
