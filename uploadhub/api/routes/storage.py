"""
Storage introspection endpoints.

Read-only views of the storage layer: which providers are available, what
upload limits apply, and whether each backend is reachable. Uploading
itself is left to the caller's own HTTP layer.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel

from ...core.storage.errors import ProviderNotFoundError
from ..dependencies import SettingsDep, StorageManagerDep

logger = logging.getLogger(__name__)

router = APIRouter()


class ProvidersResponse(BaseModel):
    default: str
    available: list[str]


class UploadConfigResponse(BaseModel):
    maxFileSize: int
    allowedTypes: list[str]
    defaultProvider: str


class ProviderHealth(BaseModel):
    status: str
    message: str
    details: dict[str, Any] = {}


class StorageHealthResponse(BaseModel):
    status: str  # "healthy" or "degraded"
    providers: dict[str, ProviderHealth]


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="List configured storage providers",
)
async def list_providers(manager: StorageManagerDep) -> ProvidersResponse:
    return ProvidersResponse(
        default=manager.default_provider_name,
        available=manager.get_available_providers(),
    )


@router.get(
    "/config",
    response_model=UploadConfigResponse,
    summary="Upload limits",
    description="Size and type limits callers should apply before uploading.",
)
async def upload_config(settings: SettingsDep) -> UploadConfigResponse:
    policy = settings.upload_policy()
    return UploadConfigResponse(
        maxFileSize=policy.max_file_size,
        allowedTypes=policy.allowed_types,
        defaultProvider=settings.default_storage_provider,
    )


@router.get(
    "/health",
    response_model=StorageHealthResponse,
    summary="Probe every storage backend",
    responses={503: {"description": "At least one backend is not healthy"}},
)
async def storage_health(manager: StorageManagerDep, response: Response) -> StorageHealthResponse:
    """
    Run a live health check against every configured backend.

    Returns 503 when any backend reports something other than healthy.
    """
    results = await manager.health_check_all()
    all_healthy = all(r.is_healthy for r in results.values())

    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Storage backends unhealthy",
            extra={
                "providers": {
                    name: r.status.value for name, r in results.items() if not r.is_healthy
                }
            },
        )

    return StorageHealthResponse(
        status="healthy" if all_healthy else "degraded",
        providers={
            name: ProviderHealth(**r.to_dict()) for name, r in results.items()
        },
    )


@router.get(
    "/providers/{name}/stats",
    summary="Describe a storage provider",
)
async def provider_stats(name: str, manager: StorageManagerDep) -> dict[str, Any]:
    try:
        stats = await manager.provider_stats(name)
    except ProviderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return stats or {"provider": name}
