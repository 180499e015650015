"""
Infrastructure layer: HTTP client for the licensing authority.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import requests
from pydantic import ValidationError

from licensekeeper.client.domain.entities import is_valid_key_format
from licensekeeper.client.domain.results import (
    AuthorityInvalid,
    AuthorityTransportError,
    AuthorityValid,
)
from licensekeeper.common.models import AuthorityResponse

if TYPE_CHECKING:
    from licensekeeper.client.domain.results import AuthorityResult

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_CLIENT_ERROR = 400

VALIDATE_PATH = "/v1/licenses/validate"
ACTIVATE_PATH = "/v1/licenses/activate"
DEACTIVATE_PATH = "/v1/licenses/deactivate"


class AuthorityClient:
    """Issues validate/activate/deactivate requests and normalizes the outcome."""

    def __init__(
        self,
        base_url: str,
        store_id: int,
        product_id: int,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store_id = store_id
        self.product_id = product_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def validate(
        self, license_key: str, instance_id: str | None = None
    ) -> AuthorityResult:
        """Check a key, optionally bound to one instance."""
        params = {"license_key": license_key}
        if instance_id:
            params["instance_id"] = instance_id
        return self._request(VALIDATE_PATH, license_key, params, check_meta=True)

    def activate(self, license_key: str, instance_name: str) -> AuthorityResult:
        """Bind the key to a new instance."""
        params = {"license_key": license_key, "instance_name": instance_name}
        result = self._request(
            ACTIVATE_PATH, license_key, params, check_meta=True, require_meta=False
        )
        if isinstance(result, AuthorityValid) and result.instance is None:
            return AuthorityInvalid("Authority activated the key without an instance")
        return result

    def deactivate(self, license_key: str, instance_id: str) -> AuthorityResult:
        """Release the instance slot held by this installation."""
        params = {"license_key": license_key, "instance_id": instance_id}
        return self._request(DEACTIVATE_PATH, license_key, params, check_meta=False)

    def _request(
        self,
        path: str,
        license_key: str,
        params: dict[str, str],
        *,
        check_meta: bool,
        require_meta: bool = True,
    ) -> AuthorityResult:
        if not is_valid_key_format(license_key):
            return AuthorityInvalid("Invalid license key format.")

        url = f"{self.base_url}{path}"
        logger.debug("POST %s", url)
        try:
            r = self.session.post(
                url,
                data=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            return AuthorityTransportError(
                f"Request to {path} timed out after {self.timeout}s"
            )
        except requests.RequestException as e:
            return AuthorityTransportError(f"Network error: {e}")

        body = self._parse_body(r)

        if r.status_code == HTTP_NOT_FOUND:
            reason = (body.error if body else None) or "License key not found."
            return AuthorityInvalid(reason, status_code=r.status_code)
        if r.status_code == HTTP_TOO_MANY_REQUESTS:
            return AuthorityTransportError(
                "Rate limit exceeded. Please try again later.",
                status_code=r.status_code,
                rate_limited=True,
            )
        if r.status_code >= HTTP_CLIENT_ERROR:
            if body is not None and body.is_rejection():
                return AuthorityInvalid(
                    body.error or "License key was rejected.",
                    status_code=r.status_code,
                )
            message = (body.error if body else None) or f"HTTP {r.status_code}"
            return AuthorityTransportError(
                f"API Error: {message}", status_code=r.status_code
            )

        if body is None:
            return AuthorityTransportError(
                "Authority returned an unreadable response", status_code=r.status_code
            )
        if body.is_rejection():
            return AuthorityInvalid(
                body.error or "Invalid license key.", status_code=r.status_code
            )
        if check_meta:
            mismatch = self._check_meta(body, required=require_meta)
            if mismatch:
                return AuthorityInvalid(mismatch, status_code=r.status_code)
        return AuthorityValid(body)

    def _check_meta(self, body: AuthorityResponse, *, required: bool) -> str | None:
        """Return a rejection reason unless the key belongs to this product."""
        if body.meta is None:
            if not required:
                return None
            return "Authority response did not identify the store and product."
        if body.meta.store_id is None or body.meta.product_id is None:
            return "Authority response did not identify the store and product."
        if body.meta.store_id != self.store_id:
            return "This license key belongs to a different store."
        if body.meta.product_id != self.product_id:
            return "This license key is for a different product."
        return None

    @staticmethod
    def _parse_body(r: requests.Response) -> AuthorityResponse | None:
        try:
            return AuthorityResponse.model_validate(r.json())
        except (ValueError, ValidationError):
            logger.debug("Unparseable authority body (HTTP %s)", r.status_code)
            return None
