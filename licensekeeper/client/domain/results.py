"""Domain layer: outcomes of authority requests.

Every request to the authority resolves to exactly one of three variants, so
callers branch on the type instead of probing optional fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from licensekeeper.common.models import (
        AuthorityInstance,
        AuthorityMeta,
        AuthorityResponse,
        LicenseKeyDetails,
    )


@dataclass(frozen=True)
class AuthorityValid:
    """The authority accepted the request for this store and product."""

    response: AuthorityResponse

    @property
    def meta(self) -> AuthorityMeta | None:
        return self.response.meta

    @property
    def instance(self) -> AuthorityInstance | None:
        return self.response.instance

    @property
    def license_details(self) -> LicenseKeyDetails | None:
        return self.response.license_key


@dataclass(frozen=True)
class AuthorityInvalid:
    """The authority (or the local format check) rejected the key."""

    reason: str
    status_code: int | None = None
    permanent: bool = True


@dataclass(frozen=True)
class AuthorityTransportError:
    """The request never produced a usable verdict."""

    message: str
    status_code: int | None = None
    rate_limited: bool = False


AuthorityResult = Union[AuthorityValid, AuthorityInvalid, AuthorityTransportError]
