"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

A single cached Settings instance is shared by the API, the WebSocket
identification sessions and the local scanning script.

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)

# 24 hours in milliseconds
DEFAULT_FRESHNESS_WINDOW_MS = 24 * 60 * 60 * 1000


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        freshness_window_ms: Maximum accepted age of an identity payload
        history_capacity: Number of confirmed scans kept per quick-scan widget
        scan_timeout_seconds: Maximum scanning duration (0 = no limit)
        camera_index: OpenCV camera device index for local scanning
        frame_interval_ms: Delay between local camera frame reads
        cors_origins: Allowed CORS origins (JSON array string)

    Example:
        >>> settings = Settings()
        >>> settings.freshness_window_ms
        86400000
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="MediKeep Identification API",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    # =========================================================================
    # IDENTIFICATION SETTINGS
    # =========================================================================
    freshness_window_ms: int = Field(
        default=DEFAULT_FRESHNESS_WINDOW_MS,
        ge=1,
        description="Maximum age of a scanned payload in milliseconds"
    )

    history_capacity: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Confirmed scans kept in the quick-scan history"
    )

    scan_timeout_seconds: float = Field(
        default=0,
        ge=0,
        le=3600,
        description="Maximum scanning duration in seconds (0 = no limit)"
    )

    # =========================================================================
    # CAMERA SETTINGS
    # =========================================================================
    camera_index: int = Field(
        default=0,
        ge=0,
        description="OpenCV camera device index"
    )

    frame_interval_ms: int = Field(
        default=100,
        ge=0,
        le=5000,
        description="Delay between local camera frame reads"
    )

    # =========================================================================
    # CORS SETTINGS
    # =========================================================================
    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Unknown values fall back to 'development'.
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def scan_timeout(self) -> Optional[float]:
        """Scanning time limit in seconds, or None when disabled."""
        return self.scan_timeout_seconds or None

    @property
    def frame_interval(self) -> float:
        """Local camera polling interval in seconds."""
        return self.frame_interval_ms / 1000

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
