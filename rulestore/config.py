"""
Configuration for rulestore.

Settings come from keyword arguments or from the environment:

    RULESTORE_DB_PATH        SQLite file; unset means an in-memory store
    RULESTORE_TIMEOUT        SQLite connection timeout in seconds (30)
    RULESTORE_VERSION_START  First version number handed out (1)
    RULESTORE_LOG_LEVEL      Level for the "rulestore" logger (WARNING)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RepositoryConfig(BaseModel):
    """Settings used by RulesRepository.from_config()."""

    db_path: Optional[str] = Field(default=None, description="SQLite database file")
    timeout: float = Field(default=30.0, gt=0, description="SQLite connection timeout")
    version_start: int = Field(default=1, description="First version number")
    log_level: str = Field(default="WARNING", description="Log level name")

    model_config = {"extra": "forbid"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure the level is one logging knows."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """Build a configuration from RULESTORE_* environment variables."""
        values = {
            "db_path": os.getenv("RULESTORE_DB_PATH") or None,
            "timeout": os.getenv("RULESTORE_TIMEOUT"),
            "version_start": os.getenv("RULESTORE_VERSION_START"),
            "log_level": os.getenv("RULESTORE_LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})


def configure_logging(level: str = "WARNING") -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    Calling this again only changes the level.
    """
    logger = logging.getLogger("rulestore")
    logger.setLevel(level)
    if not any(getattr(h, "_rulestore", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._rulestore = True
        logger.addHandler(handler)
    return logger
