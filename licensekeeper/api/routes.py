"""
Routes exposing the license commands to out-of-process hosts.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException

from licensekeeper.common.models import (
    ActivateRequest,
    CommandResult,
    ExtensionError,
    LicenseStateSnapshot,
)

if TYPE_CHECKING:
    from licensekeeper.client.client import LicenseClient

HTTP_BAD_REQUEST = 400
HTTP_CONFLICT = 409

# Failure codes that mean the caller must act before retrying
CONFLICT_CODES = {"ALREADY_BOUND", "NOT_BOUND"}


class LicenseRoutes:
    """Handles FastAPI routes for the license command surface."""

    def __init__(self, client: LicenseClient):
        self.client = client

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""

        app.get("/health")(self.health)
        app.get("/license/status", response_model=LicenseStateSnapshot)(self.status)
        app.get("/license/feature")(self.feature)
        app.get("/license/errors", response_model=list[ExtensionError])(self.errors)
        app.post("/license/activate", response_model=CommandResult)(self.activate)
        app.post("/license/deactivate", response_model=CommandResult)(self.deactivate)
        app.post("/license/validate")(self.validate)

    async def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return {"status": "ok", "timestamp": int(time.time())}

    async def status(self) -> LicenseStateSnapshot:
        """Handle /license/status endpoint."""
        return self.client.get_license_state()

    async def feature(self) -> dict[str, bool]:
        """Handle /license/feature endpoint."""
        return {"available": self.client.is_feature_available()}

    async def errors(self) -> list[ExtensionError]:
        """Handle /license/errors endpoint."""
        return self.client.get_errors()

    def activate(self, req: ActivateRequest) -> CommandResult:
        """Handle /license/activate endpoint."""
        return self._raise_for_failure(self.client.activate_license(req.license_key))

    def deactivate(self) -> CommandResult:
        """Handle /license/deactivate endpoint."""
        return self._raise_for_failure(self.client.deactivate_license())

    def validate(self, force: bool = False) -> dict[str, bool]:  # noqa: FBT001, FBT002
        """Handle /license/validate endpoint."""
        return {"valid": self.client.validate_license(force=force)}

    @staticmethod
    def _raise_for_failure(result: CommandResult) -> CommandResult:
        if result.success:
            return result
        status = HTTP_CONFLICT if result.code in CONFLICT_CODES else HTTP_BAD_REQUEST
        raise HTTPException(status, result.message)


def create_app(client: LicenseClient) -> FastAPI:
    """Build the FastAPI app serving ``client``."""
    app = FastAPI(title="licensekeeper", description="Local license service")
    LicenseRoutes(client).setup_routes(app)
    return app
