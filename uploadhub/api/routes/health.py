"""
Health check endpoints.

We provide two endpoints:
- /health: Basic liveness check (is the process running?)
- /health/ready: Readiness check (is at least the default storage backend
  configured?)

Neither endpoint talks to a storage backend. Live backend probes are under
/api/v1/storage/health.
"""

import logging
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check dependencies.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Liveness check. Fast and dependency-free."""
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"configured_providers": settings.configured_providers()},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 if storage is configured well enough to accept uploads.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(settings: SettingsDep, response: Response) -> ReadinessResponse:
    """
    Readiness check - can we accept uploads?

    Checks that at least one storage backend is configured and that the
    default provider is among them. Returns 503 otherwise.
    """
    checks: list[ReadinessCheck] = []
    configured = settings.configured_providers()

    if configured:
        checks.append(ReadinessCheck(name="storage_providers", status="ok"))
    else:
        checks.append(ReadinessCheck(
            name="storage_providers",
            status="error",
            error="No storage provider is configured",
        ))

    default = settings.default_storage_provider
    if default in configured:
        checks.append(ReadinessCheck(name="default_provider", status="ok"))
    else:
        missing = settings.missing_provider_fields(default)
        error = f"Default provider '{default}' is not configured"
        if missing:
            error = f"{error}. Missing: {', '.join(missing)}"
        checks.append(ReadinessCheck(name="default_provider", status="error", error=error))

    all_ok = all(c.status == "ok" for c in checks)
    if not all_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            },
        )

    return ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks,
    )
