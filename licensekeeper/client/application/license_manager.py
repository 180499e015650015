"""
Application layer: the license state machine.

``LicenseManager`` is the single authority on whether premium features may
run. It binds a key to this installation, releases it, and re-validates it
against the remote authority, falling back on the offline cache while the
authority cannot be reached.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from licensekeeper.client.application.response_cache import (
    ACTIVATIONS,
    VALIDATIONS,
    cache_key,
)
from licensekeeper.client.domain.entities import (
    FEATURE_STATES,
    DeactivationOutcome,
    LicenseEvent,
    is_valid_key_format,
)
from licensekeeper.client.domain.results import (
    AuthorityInvalid,
    AuthorityTransportError,
    AuthorityValid,
)
from licensekeeper.common.config import MIN_VALIDATION_INTERVAL
from licensekeeper.common.exceptions import (
    AlreadyBoundError,
    AuthorityRejection,
    FormatError,
    LicenseError,
    NotBoundError,
    RateLimitError,
    TransportError,
)
from licensekeeper.common.models import (
    CachedVerdict,
    ConnectivityStatus,
    LicenseRecord,
    LicenseStateSnapshot,
    LicenseStatus,
)

if TYPE_CHECKING:
    from licensekeeper.client.application.offline_cache import OfflineCacheManager
    from licensekeeper.client.application.response_cache import ResponseCache
    from licensekeeper.client.application.retry import ErrorHistory, RetryExecutor
    from licensekeeper.client.domain.results import AuthorityResult
    from licensekeeper.client.infrastructure.state_store import LicenseStorage
    from licensekeeper.common.interfaces import (
        IAuthorityClient,
        IConnectivityMonitor,
    )
    from licensekeeper.common.models import LicenseConfig

logger = logging.getLogger(__name__)

Subscriber = Callable[[LicenseEvent], None]

DEACTIVATION_FAILED = "DEACTIVATION_FAILED"


class LicenseManager:
    """Orchestrates activation, deactivation and re-validation."""

    def __init__(  # noqa: PLR0913
        self,
        config: LicenseConfig,
        storage: LicenseStorage,
        authority: IAuthorityClient,
        offline_cache: OfflineCacheManager,
        retry_executor: RetryExecutor,
        connectivity: IConnectivityMonitor,
        response_cache: ResponseCache,
        clock: Callable[[], datetime] | None = None,
        min_validation_interval: timedelta = timedelta(seconds=MIN_VALIDATION_INTERVAL),
    ):
        self.config = config
        self.storage = storage
        self.authority = authority
        self.offline_cache = offline_cache
        self.retry_executor = retry_executor
        self.connectivity = connectivity
        self.response_cache = response_cache
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.min_validation_interval = min_validation_interval

        self._status = LicenseStatus.UNLICENSED
        self._reason: str | None = None
        self._last_check: datetime | None = None
        self._restored = False
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []

    @property
    def error_history(self) -> ErrorHistory:
        return self.retry_executor.error_history

    @property
    def status(self) -> LicenseStatus:
        return self._status

    @property
    def reason(self) -> str | None:
        return self._reason

    def is_feature_available(self) -> bool:
        """Cheap read of the current verdict; never touches the network."""
        if not self._restored:
            self._ensure_restored()
        return self._status in FEATURE_STATES

    # Observers

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for status changes; returns a function that unsubscribes."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _set_status(self, status: LicenseStatus, reason: str | None = None) -> None:
        previous = self._status
        self._status = status
        self._reason = reason
        if previous == status:
            return
        logger.info("License status %s -> %s", previous.value, status.value)
        event = LicenseEvent(
            previous=previous, status=status, timestamp=self.clock(), reason=reason
        )
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("License subscriber %r failed", callback)

    # Startup reconciliation

    def _ensure_restored(self) -> None:
        with self._lock:
            if self._restored:
                return
            self._restored = True
            record = self.storage.load_record()
            if record is None:
                return
            if not self.offline_cache.enabled or self.offline_cache.is_offline_acceptable():
                self._set_status(LicenseStatus.LICENSED)
            else:
                self._set_status(
                    LicenseStatus.UNLICENSED,
                    "Stored license must be re-validated online",
                )
            logger.debug("Restored license state: %s", self._status.value)

    # Transitions

    def activate(self, license_key: str) -> LicenseRecord:
        """Bind a key to this installation. One shot: errors are not retried."""
        license_key = (license_key or "").strip()
        with self._lock:
            self._ensure_restored()
            if self.storage.is_bound():
                raise self._record(
                    AlreadyBoundError(
                        "A license is already active. Deactivate it before "
                        "activating another key."
                    )
                )
            if not is_valid_key_format(license_key):
                raise self._record(FormatError("Invalid license key format."))

            self._prevalidate(license_key)

            instance_name = f"{self.config.instance_name_prefix}-{uuid.uuid4()}"
            activation = self._expect_valid(
                self.authority.activate(license_key, instance_name)
            )
            assert activation.instance is not None

            now = self.clock()
            api_data = activation.response.model_dump(mode="json", exclude_none=True)
            record = LicenseRecord(
                license_key=license_key,
                instance_id=activation.instance.id,
                last_validated_at=now,
                valid_until=_expiry(activation),
                api_data=api_data,
            )
            self.storage.save_record(record)
            self.offline_cache.cache_valid_verdict(
                CachedVerdict(
                    is_licensed=True,
                    cached_at=now,
                    offline_enabled=self.offline_cache.enabled,
                )
            )
            self.response_cache.put(
                ACTIVATIONS, cache_key(license_key, record.instance_id), api_data
            )
            self.connectivity.mark_online()
            self._last_check = now
            self._set_status(LicenseStatus.LICENSED)
            logger.info("License activated, instance %s", record.instance_id)
            return record

    def _prevalidate(self, license_key: str) -> None:
        """Validate before binding, unless a fresh verdict for the key is cached."""
        key = cache_key(license_key)
        if self.response_cache.get(VALIDATIONS, key) is not None:
            logger.debug("Using cached validation for activation")
            return
        validation = self._expect_valid(self.authority.validate(license_key))
        self.response_cache.put(
            VALIDATIONS,
            key,
            validation.response.model_dump(mode="json", exclude_none=True),
        )

    def deactivate(self) -> DeactivationOutcome:
        """Revoke local trust first, then release the slot at the authority."""
        with self._lock:
            self._ensure_restored()
            record = self.storage.load_record()
            if record is None:
                raise self._record(NotBoundError("No active license found."))

            self._clear_local()
            self._set_status(LicenseStatus.UNLICENSED, "License deactivated")

            result = self.authority.deactivate(record.license_key, record.instance_id)
            if isinstance(result, AuthorityValid):
                logger.info("License deactivated, instance %s released", record.instance_id)
            else:
                message = _describe(result)
                self.error_history.record(
                    DEACTIVATION_FAILED,
                    f"Authority did not confirm deactivation: {message}",
                    retryable=isinstance(result, AuthorityTransportError),
                )
                logger.warning("Remote deactivation not confirmed: %s", message)
            return DeactivationOutcome(license_key=record.license_key, remote_result=result)

    def refresh(self, *, force: bool = False) -> bool:
        """Re-validate the bound license, at most once per rate-limit window.

        Returns whether premium features are available afterwards.
        """
        with self._lock:
            self._ensure_restored()
            now = self.clock()
            if (
                not force
                and self._last_check is not None
                and now - self._last_check < self.min_validation_interval
            ):
                logger.debug("Validation skipped, last check at %s", self._last_check)
                return self.is_feature_available()
            self._last_check = now

            record = self.storage.load_record()
            if record is None:
                self._set_status(LicenseStatus.UNLICENSED)
                return False

            if (
                self.offline_cache.enabled
                and not self.connectivity.is_online
                and self.offline_cache.is_offline_acceptable(now)
            ):
                self._set_status(
                    LicenseStatus.OFFLINE_GRACE,
                    "Licensing server unreachable, using cached license",
                )
                return True

            try:
                validation = self.retry_executor.with_retry(
                    lambda: self._validate_live(record)
                )
            except AuthorityRejection as e:
                self._invalidate(e.message)
                return False
            except TransportError as e:
                return self._tolerate_transport_error(e)

            self._accept_validation(record, validation)
            return True

    def _validate_live(self, record: LicenseRecord) -> AuthorityValid:
        result = self.authority.validate(record.license_key, record.instance_id)
        if isinstance(result, AuthorityValid):
            if result.instance is not None and result.instance.id != record.instance_id:
                msg = "This installation's license instance is no longer active."
                raise AuthorityRejection(msg)
            return result
        raise _to_error(result)

    def _accept_validation(self, record: LicenseRecord, validation: AuthorityValid) -> None:
        now = self.clock()
        api_data = validation.response.model_dump(mode="json", exclude_none=True)
        updated = record.model_copy(
            update={
                "last_validated_at": now,
                "valid_until": _expiry(validation) or record.valid_until,
                "api_data": api_data,
            }
        )
        self.storage.save_record(updated)
        self.offline_cache.cache_valid_verdict(
            CachedVerdict(
                is_licensed=True, cached_at=now, offline_enabled=self.offline_cache.enabled
            )
        )
        self.response_cache.put(
            VALIDATIONS, cache_key(record.license_key, record.instance_id), api_data
        )
        self.connectivity.mark_online()
        self._set_status(LicenseStatus.LICENSED)
        logger.info("License validated")

    def _invalidate(self, reason: str) -> None:
        logger.warning("License invalidated: %s", reason)
        self.error_history.record(AuthorityRejection.code, reason)
        self._set_status(LicenseStatus.INVALIDATED, reason)
        self._clear_local()
        self._set_status(LicenseStatus.UNLICENSED, reason)

    def _tolerate_transport_error(self, error: TransportError) -> bool:
        if not isinstance(error, RateLimitError):
            self.connectivity.mark_offline()
        if self.offline_cache.is_offline_acceptable():
            remaining = self.offline_cache.remaining_grace_window()
            logger.warning(
                "Validation failed (%s); offline grace for another %s", error, remaining
            )
            self._set_status(
                LicenseStatus.OFFLINE_GRACE,
                "Licensing server unreachable, using cached license",
            )
            return True
        if self.offline_cache.enabled:
            logger.warning("Validation failed (%s) and offline grace has lapsed", error)
            self._set_status(
                LicenseStatus.UNLICENSED,
                "Offline grace period expired. Connect to re-validate your license.",
            )
            return False
        logger.warning("Validation failed (%s); keeping current state", error)
        return self.is_feature_available()

    def _clear_local(self) -> None:
        self.storage.clear_record()
        self.offline_cache.clear_verdict()
        self.response_cache.clear()

    def _expect_valid(self, result: AuthorityResult) -> AuthorityValid:
        if isinstance(result, AuthorityValid):
            return result
        raise self._record(_to_error(result))

    def _record(self, error: LicenseError) -> LicenseError:
        self.error_history.record(error.code, error.message, retryable=error.retryable)
        return error

    # Read model

    def snapshot(self) -> LicenseStateSnapshot:
        self._ensure_restored()
        record = self.storage.load_record()
        data = None
        if record is not None:
            data = (
                self.response_cache.get(
                    VALIDATIONS, cache_key(record.license_key, record.instance_id)
                )
                or self.response_cache.get(
                    ACTIVATIONS, cache_key(record.license_key, record.instance_id)
                )
                or record.api_data
            )
        return LicenseStateSnapshot(
            status=self._status,
            is_licensed=self.is_feature_available(),
            license_key=record.license_key if record else None,
            instance_id=record.instance_id if record else None,
            last_validated=record.last_validated_at if record else None,
            valid_until=record.valid_until if record else None,
            reason=self._reason,
            retry_count=self.retry_executor.retry_count,
            offline_mode_enabled=self.offline_cache.enabled,
            grace_remaining_seconds=self.offline_cache.remaining_grace_window().total_seconds(),
            connectivity=ConnectivityStatus(
                is_online=self.connectivity.is_online,
                tooltip_text=self.connectivity.tooltip_text,
            ),
            validation_errors=self.error_history.entries(),
            data=data,
        )


def _to_error(result: AuthorityResult) -> LicenseError:
    if isinstance(result, AuthorityInvalid):
        return AuthorityRejection(result.reason, result.status_code)
    if isinstance(result, AuthorityTransportError):
        if result.rate_limited:
            return RateLimitError(result.message)
        return TransportError(result.message, result.status_code)
    msg = f"Unexpected authority result {result!r}"
    raise TypeError(msg)


def _describe(result: AuthorityResult) -> str:
    if isinstance(result, AuthorityInvalid):
        return result.reason
    if isinstance(result, AuthorityTransportError):
        return result.message
    return "ok"


def _expiry(result: AuthorityValid) -> datetime | None:
    details = result.license_details
    if details is None or not details.expires_at:
        return None
    try:
        expires = datetime.fromisoformat(details.expires_at.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring malformed expires_at %r", details.expires_at)
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires
