"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management for the QR scan station using Pydantic Settings.

A single global configuration instance is shared through ``get_settings()``.

Features:
---------
- Environment variable loading with type validation
- .env file support for local development
- Scanner defaults (frame rate, scan region, render surface)
- Computed properties for derived values

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
import re
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


CSS_LENGTH_PATTERN = re.compile(r"^\d+(\.\d+)?(px|%)$")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        scanner_fps: Default decode frame rate
        scanner_qrbox_width: Default scan region width in pixels
        scanner_qrbox_height: Default scan region height in pixels
        scanner_aspect_ratio: Default viewfinder aspect ratio
        scanner_render_width: Default render surface width (CSS length)
        scanner_render_height: Default render surface height (CSS length)
        camera_probe_limit: Indices probed when no /dev/video nodes exist
        camera_max_read_failures: Consecutive failed reads before capture is lost
        preview_enabled: Publish annotated preview frames to surfaces
        preview_jpeg_quality: JPEG quality for preview frames
        auto_start_delay_ms: Delay before a mounted session auto-starts
        rescan_delay_ms: Delay before restarting in continuous mode
        scan_log_enabled: Write completed scans to daily log files
        scan_log_directory: Directory for scan log files
        recent_scans_limit: Completed scans kept in memory
        manual_code_max_length: Longest accepted manual entry

    Example:
        >>> settings = Settings()
        >>> print(settings.scanner_fps)
        10
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
        default="QR Scan Station",
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

    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # SCANNER DEFAULTS
    # =========================================================================
    scanner_fps: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Frames decoded per second"
    )

    scanner_qrbox_width: int = Field(
        default=250,
        ge=50,
        le=4096,
        description="Scan region width in pixels"
    )

    scanner_qrbox_height: int = Field(
        default=250,
        ge=50,
        le=4096,
        description="Scan region height in pixels"
    )

    scanner_aspect_ratio: float = Field(
        default=1.0,
        gt=0,
        le=4.0,
        description="Viewfinder aspect ratio (width / height)"
    )

    scanner_render_width: str = Field(
        default="100%",
        description="Render surface width as a CSS length"
    )

    scanner_render_height: str = Field(
        default="300px",
        description="Render surface height as a CSS length"
    )

    # =========================================================================
    # CAMERA SETTINGS
    # =========================================================================
    camera_probe_limit: int = Field(
        default=5,
        ge=1,
        le=64,
        description="Capture indices probed when no /dev/video nodes exist"
    )

    camera_max_read_failures: int = Field(
        default=30,
        ge=1,
        le=1000,
        description="Consecutive failed frame reads before capture is lost"
    )

    preview_enabled: bool = Field(
        default=True,
        description="Publish annotated preview frames to rendering surfaces"
    )

    preview_jpeg_quality: int = Field(
        default=80,
        ge=10,
        le=100,
        description="JPEG quality for preview frames"
    )

    # =========================================================================
    # SESSION SETTINGS
    # =========================================================================
    auto_start_delay_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Delay before a mounted session starts scanning"
    )

    rescan_delay_ms: int = Field(
        default=2000,
        ge=0,
        le=60000,
        description="Delay before restarting a session in continuous mode"
    )

    # =========================================================================
    # SCAN LOG SETTINGS
    # =========================================================================
    scan_log_enabled: bool = Field(
        default=True,
        description="Write completed scans to daily log files"
    )

    scan_log_directory: str = Field(
        default="storage/logs",
        description="Directory for scan log files"
    )

    recent_scans_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Number of completed scans kept in memory"
    )

    manual_code_max_length: int = Field(
        default=2048,
        ge=1,
        le=65536,
        description="Longest accepted manually entered code"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """
        Validate and normalize application environment.

        Unknown values fall back to 'development' with a warning.
        """
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("scanner_render_width", "scanner_render_height")
    @classmethod
    def validate_css_length(cls, value: str) -> str:
        """
        Validate render surface dimensions.

        Args:
            value: CSS length such as '100%' or '300px'

        Returns:
            Normalized (stripped, lowercase) length

        Raises:
            ValueError: If the value is not a px or % length
        """
        normalized = value.strip().lower()
        if not CSS_LENGTH_PATTERN.match(normalized):
            raise ValueError(
                f"Invalid render dimension: {value}. Use e.g. '300px' or '100%'"
            )
        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def scan_log_path(self) -> Path:
        """
        Get scan log directory as Path object.

        Creates the directory if it doesn't exist.
        """
        path = Path(self.scan_log_directory)
        path.mkdir(parents=True, exist_ok=True)
        return path

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

    @property
    def auto_start_delay_seconds(self) -> float:
        """Get auto-start delay in seconds."""
        return self.auto_start_delay_ms / 1000

    @property
    def rescan_delay_seconds(self) -> float:
        """Get continuous-mode restart delay in seconds."""
        return self.rescan_delay_ms / 1000

    def ensure_directories(self) -> None:
        """Create the scan log directory when scan logging is enabled."""
        if self.scan_log_enabled:
            self.scan_log_path.mkdir(parents=True, exist_ok=True)

        logger.debug("Required directories created/verified")

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

    Uses lru_cache so only one Settings instance is created throughout the
    application lifecycle.

    Returns:
        Global Settings instance
    """
    settings = Settings()

    settings.ensure_directories()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
