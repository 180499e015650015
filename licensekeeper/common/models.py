"""
Pydantic models for authority responses, persisted state and configuration.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LicenseStatus(str, Enum):
    UNLICENSED = "unlicensed"
    LICENSED = "licensed"
    INVALIDATED = "invalidated"
    OFFLINE_GRACE = "offline_grace"


# Authority wire models


class AuthorityMeta(BaseModel):
    """Store and product the key belongs to.

    Ids that are missing or not integers read as None so the ownership check
    rejects them instead of the whole body failing to parse.
    """

    store_id: int | None = None
    product_id: int | None = None
    customer_id: int | None = None
    customer_email: str | None = None

    @field_validator("store_id", "product_id", "customer_id", mode="before")
    @classmethod
    def _unreadable_id_is_none(cls, value: Any) -> int | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return None

    @field_validator("customer_email", mode="before")
    @classmethod
    def _unreadable_email_is_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class AuthorityInstance(BaseModel):
    id: str
    name: str | None = None
    created_at: str | None = None


class LicenseKeyDetails(BaseModel):
    id: int | None = None
    status: str | None = None
    key: str | None = None
    activation_limit: int | None = None
    activation_usage: int | None = None
    created_at: str | None = None
    expires_at: str | None = None
    test_mode: bool | None = None


class AuthorityResponse(BaseModel):
    valid: bool | None = None
    activated: bool | None = None
    deactivated: bool | None = None
    error: str | None = None
    meta: AuthorityMeta | None = None
    instance: AuthorityInstance | None = None
    license_key: LicenseKeyDetails | None = None

    @field_validator("meta", mode="before")
    @classmethod
    def _unreadable_meta_is_empty(cls, value: Any) -> Any:
        # Present but not an object: keep it so the ownership check rejects it
        if value is None or isinstance(value, dict):
            return value
        return {}

    def is_rejection(self) -> bool:
        """True when the body carries an explicit negative verdict."""
        return False in (self.valid, self.activated, self.deactivated)


# Configuration


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorTrackingConfig(_CamelModel):
    max_errors: int = Field(default=100, gt=0)
    cleanup_interval: int = Field(default=7, gt=0)  # days
    retain_failed_attempts: bool = False


class OfflineModeConfig(_CamelModel):
    enabled: bool = True
    cache_duration: float = Field(default=72, gt=0)  # hours


class ApiCacheConfig(_CamelModel):
    enabled: bool = True
    duration: float = Field(default=30, ge=0)  # minutes


class LicenseConfig(_CamelModel):
    """Validated runtime configuration of the license manager."""

    max_retries: int = Field(default=3, ge=1)
    retry_delay: int = Field(default=5000, ge=0)  # milliseconds
    validation_interval: float = Field(default=24, gt=0)  # hours
    show_notifications: bool = True
    validate_on_startup: bool = True
    error_tracking: ErrorTrackingConfig = Field(default_factory=ErrorTrackingConfig)
    offline_mode: OfflineModeConfig = Field(default_factory=OfflineModeConfig)
    api_cache: ApiCacheConfig = Field(default_factory=ApiCacheConfig)

    api_base_url: str = "https://api.lemonsqueezy.com"
    store_id: int = 157343
    product_id: int = 463516
    request_timeout: float = Field(default=10.0, gt=0)
    ping_timeout: float = Field(default=5.0, gt=0)
    instance_name_prefix: str = "licensekeeper"
    connectivity_check_interval: float = Field(default=60, gt=0)  # seconds

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay / 1000

    @property
    def offline_cache_duration(self) -> timedelta:
        return timedelta(hours=self.offline_mode.cache_duration)

    @property
    def error_retention(self) -> timedelta:
        return timedelta(days=self.error_tracking.cleanup_interval)


# Persisted state


class CachedVerdict(BaseModel):
    is_licensed: bool = False
    cached_at: datetime
    offline_enabled: bool = True


class OfflineState(BaseModel):
    enabled: bool = False
    last_online_check: datetime
    cached_verdict: CachedVerdict


class CacheEntry(BaseModel):
    data: dict[str, Any]
    timestamp: datetime
    expiry: datetime


class ApiCache(BaseModel):
    validations: dict[str, CacheEntry] = Field(default_factory=dict)
    activations: dict[str, CacheEntry] = Field(default_factory=dict)


class LicenseRecord(BaseModel):
    license_key: str
    instance_id: str
    last_validated_at: datetime | None = None
    valid_until: datetime | None = None
    api_data: dict[str, Any] | None = None


class ExtensionError(BaseModel):
    code: str
    message: str
    timestamp: datetime
    retryable: bool = False
    details: str | None = None


# Command surface


class ConnectivityStatus(BaseModel):
    is_online: bool
    tooltip_text: str


class LicenseStateSnapshot(BaseModel):
    status: LicenseStatus
    is_licensed: bool
    license_key: str | None = None
    instance_id: str | None = None
    last_validated: datetime | None = None
    valid_until: datetime | None = None
    reason: str | None = None
    retry_count: int = 0
    offline_mode_enabled: bool = True
    grace_remaining_seconds: float = 0.0
    connectivity: ConnectivityStatus
    validation_errors: list[ExtensionError] = Field(default_factory=list)
    data: dict[str, Any] | None = None


class CommandResult(BaseModel):
    success: bool
    message: str
    code: str | None = None
    remote_confirmed: bool | None = None
    data: dict[str, Any] | None = None


class ActivateRequest(BaseModel):
    license_key: str
