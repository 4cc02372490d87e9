"""Lattice configuration using pydantic-settings.

This module defines the LatticeSettings class that reads configuration
from environment variables with the LATTICE_ prefix. Every field has a
default so the governance core can start without any environment set.
"""

import re
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


class LatticeSettings(BaseSettings):
    """Lattice configuration from environment variables.

    All environment variables are prefixed with LATTICE_ (e.g., LATTICE_GITHUB_REPO).
    """

    model_config = SettingsConfigDict(
        env_prefix="LATTICE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Repository ("owner/repo") used when a pull request artifact link carries
    # no URL to derive the repository from
    github_repo: Optional[str] = None

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # "json" for log aggregation, "console" for local development
    log_format: str = "json"

    # -------------------------------------------------------------------------
    # Metrics Configuration
    # -------------------------------------------------------------------------
    metrics_enabled: bool = True

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_repo")
    @classmethod
    def validate_github_repo(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the default repository is in owner/repo format."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if not _REPO_PATTERN.match(v):
            raise ValueError("github_repo must be in owner/repo format")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize the log level name."""
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate the log output format."""
        fmt = v.strip().lower()
        if fmt not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return fmt

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> LatticeSettings:
    """Create and return a LatticeSettings instance.

    Returns:
        LatticeSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return LatticeSettings()
