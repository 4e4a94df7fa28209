"""
Foundation settings for the Flash ecosystem.
"""

import logging
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import setup_logging


class FlashSettings(BaseSettings):
    """
    Core settings for all Flash modules.
    Individual packages (like flash_alarm) inherit from this.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # --- Basic Environment ---
    DEBUG: bool = True
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Path | None = None
    LOG_NAMESPACE: str = "flash_alarm"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    def is_development(self) -> bool:
        return self.DEBUG or self.ENVIRONMENT == "development"

    def configure_logging(self) -> logging.Logger:
        """Apply LOG_LEVEL / LOG_FILE to the package namespace."""
        return setup_logging(
            level=self.LOG_LEVEL,
            log_file=self.LOG_FILE,
            module_name=self.LOG_NAMESPACE,
        )
