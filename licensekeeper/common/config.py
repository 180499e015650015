"""
Configuration settings for the license lifecycle manager.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Authority settings
        self.API_BASE_URL: str = os.getenv(
            "LICENSEKEEPER_API_BASE_URL", "https://api.lemonsqueezy.com"
        ).rstrip("/")
        self.STORE_ID: int = int(os.getenv("LICENSEKEEPER_STORE_ID", "157343"))
        self.PRODUCT_ID: int = int(os.getenv("LICENSEKEEPER_PRODUCT_ID", "463516"))
        self.REQUEST_TIMEOUT: float = 10.0  # Seconds before a request counts as failed
        self.PING_TIMEOUT: float = 5.0
        self.INSTANCE_NAME_PREFIX: str = "licensekeeper"

        # Retry settings
        self.MAX_RETRIES: int = 3
        self.RETRY_DELAY: int = 5000  # Milliseconds between attempts

        # Validation schedule
        self.VALIDATION_INTERVAL: int = 24  # Hours between background validations
        self.CONNECTIVITY_CHECK_INTERVAL: int = 60  # Seconds between pings
        self.VALIDATE_ON_STARTUP: bool = True
        self.SHOW_NOTIFICATIONS: bool = True

        # Offline mode
        self.OFFLINE_MODE_ENABLED: bool = True
        self.OFFLINE_CACHE_DURATION: int = 72  # Hours

        # Error tracking
        self.MAX_ERRORS: int = 100
        self.ERROR_CLEANUP_INTERVAL: int = 7  # Days
        self.RETAIN_FAILED_ATTEMPTS: bool = False

        # Response cache
        self.API_CACHE_ENABLED: bool = True
        self.API_CACHE_DURATION: int = 30  # Minutes

        # File paths
        self.BASE_DIR: Path = Path(__file__).parent.parent
        self.STATE_FILE_PATH: Path = Path(
            os.getenv(
                "LICENSEKEEPER_STATE_FILE",
                str(Path.home() / ".licensekeeper" / "state.json"),
            )
        )

        # Logging
        level_name = os.getenv("LICENSEKEEPER_LOG_LEVEL", "INFO").upper()
        self.LOG_LEVEL: int = getattr(logging, level_name, logging.INFO)


# Rate limit for live validations, in seconds
MIN_VALIDATION_INTERVAL = 5 * 60
