"""Infrastructure layer: Configuration loading and file operations.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from licensekeeper.common import setup_logger
from licensekeeper.common.config import Config
from licensekeeper.common.models import LicenseConfig


class ConfigLoader:
    """Merges defaults, an optional JSON config file and explicit overrides."""

    def __init__(
        self,
        config_file: str | Path | None = None,
        overrides: dict[str, Any] | None = None,
        state_file_path: Path | None = None,
        log_level: int | None = None,
    ):
        self.config: Config = Config()
        self.config_file = Path(config_file) if config_file else None
        self.overrides = overrides or {}

        self.state_file_path: Path = state_file_path or self.config.STATE_FILE_PATH
        self.log_level: int = (
            log_level if log_level is not None else self.config.LOG_LEVEL
        )

        # Setup logging for the whole package
        self.logger = logging.getLogger("licensekeeper")
        setup_logger(self.logger, self.log_level)

    def defaults(self) -> dict[str, Any]:
        """Defaults taken from Config, including environment overrides."""
        return {
            "max_retries": self.config.MAX_RETRIES,
            "retry_delay": self.config.RETRY_DELAY,
            "validation_interval": self.config.VALIDATION_INTERVAL,
            "show_notifications": self.config.SHOW_NOTIFICATIONS,
            "validate_on_startup": self.config.VALIDATE_ON_STARTUP,
            "error_tracking": {
                "max_errors": self.config.MAX_ERRORS,
                "cleanup_interval": self.config.ERROR_CLEANUP_INTERVAL,
                "retain_failed_attempts": self.config.RETAIN_FAILED_ATTEMPTS,
            },
            "offline_mode": {
                "enabled": self.config.OFFLINE_MODE_ENABLED,
                "cache_duration": self.config.OFFLINE_CACHE_DURATION,
            },
            "api_cache": {
                "enabled": self.config.API_CACHE_ENABLED,
                "duration": self.config.API_CACHE_DURATION,
            },
            "api_base_url": self.config.API_BASE_URL,
            "store_id": self.config.STORE_ID,
            "product_id": self.config.PRODUCT_ID,
            "request_timeout": self.config.REQUEST_TIMEOUT,
            "ping_timeout": self.config.PING_TIMEOUT,
            "instance_name_prefix": self.config.INSTANCE_NAME_PREFIX,
            "connectivity_check_interval": self.config.CONNECTIVITY_CHECK_INTERVAL,
        }

    def load_file(self) -> dict[str, Any]:
        """Load user settings from the JSON config file, if one was given."""
        if self.config_file is None:
            return {}
        if not self.config_file.exists():
            msg = f"Config file not found: {self.config_file}"
            raise FileNotFoundError(msg)
        with self.config_file.open() as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                msg = f"Invalid config file format in {self.config_file}: {e}"
                raise ValueError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {self.config_file} must contain a JSON object"
            raise ValueError(msg)
        return data

    def load(self) -> LicenseConfig:
        """Build the validated runtime configuration."""
        base = LicenseConfig.model_validate(self.defaults())
        merged = _deep_merge(
            base.model_dump(by_alias=True),
            _camelize(self.load_file()),
        )
        merged = _deep_merge(merged, _camelize(self.overrides))
        try:
            return LicenseConfig.model_validate(merged)
        except ValidationError as e:
            msg = f"Invalid license configuration: {e}"
            raise ValueError(msg) from e


def _camelize(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize keys to the camelCase aliases used for merging."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        head, *rest = key.split("_")
        camel = head + "".join(part.title() for part in rest)
        result[camel] = _camelize(value) if isinstance(value, dict) else value
    return result


def _deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
