"""Domain layer: Core business entities and rules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from licensekeeper.client.domain.results import AuthorityValid
from licensekeeper.common.models import LicenseStatus

if TYPE_CHECKING:
    from datetime import datetime

    from licensekeeper.client.domain.results import AuthorityResult

LICENSE_KEY_PATTERN = re.compile(
    r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"
)

# States in which gated features may run
FEATURE_STATES = frozenset({LicenseStatus.LICENSED, LicenseStatus.OFFLINE_GRACE})


def is_valid_key_format(license_key: str | None) -> bool:
    """Check the 8-4-4-4-12 hex group shape issued by the authority."""
    if not license_key:
        return False
    return LICENSE_KEY_PATTERN.match(license_key) is not None


@dataclass(frozen=True)
class LicenseEvent:
    """Domain event published on every status change."""

    previous: LicenseStatus
    status: LicenseStatus
    timestamp: datetime
    reason: str | None = None

    @property
    def feature_available(self) -> bool:
        return self.status in FEATURE_STATES


@dataclass(frozen=True)
class DeactivationOutcome:
    """Result of a deactivation: local trust is always revoked."""

    license_key: str
    remote_result: AuthorityResult

    @property
    def remote_confirmed(self) -> bool:
        return isinstance(self.remote_result, AuthorityValid)
