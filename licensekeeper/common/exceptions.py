"""
Custom exceptions for the license lifecycle manager.
"""

from __future__ import annotations


class LicenseError(Exception):
    """Base exception for license failures."""

    code = "LICENSE_ERROR"
    retryable = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FormatError(LicenseError):
    """License key does not have the expected shape."""

    code = "INVALID_FORMAT"


class AuthorityRejection(LicenseError):
    """The authority refused the key, the instance or the store/product."""

    code = "VALIDATION_FAILED"


class TransportError(LicenseError):
    """Network failure, timeout or unexpected HTTP status."""

    code = "TRANSPORT_ERROR"
    retryable = True


class RateLimitError(TransportError):
    """Exception for rate limiting."""

    code = "RATE_LIMITED"

    def __init__(self, message: str) -> None:
        super().__init__(message, 429)


class AlreadyBoundError(LicenseError):
    code = "ALREADY_BOUND"


class NotBoundError(LicenseError):
    code = "NOT_BOUND"


class FeatureUnavailableError(LicenseError):
    """Raised by gated callables when no license is active."""

    code = "FEATURE_UNAVAILABLE"


class AlreadyInitializedError(LicenseError):
    code = "ALREADY_INITIALIZED"


class NotInitializedError(LicenseError):
    code = "NOT_INITIALIZED"
