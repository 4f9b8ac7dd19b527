"""
Supabase Storage provider.

Supabase exposes buckets through a token-authenticated REST API under
`<project>/storage/v1`. Uploads and listings use the anon key; deletes use
the service-role key when one is configured, since row-level policies
usually forbid anonymous deletes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...core.storage.errors import ConfigurationError, ResolutionError
from ...core.storage.helpers import build_object_key, generate_file_id
from ...core.storage.models import (
    DEFAULT_URL_EXPIRY_SECONDS,
    DeleteResult,
    HealthState,
    HealthStatus,
    StoredFile,
    UploadRequest,
)
from .base import DEFAULT_TIMEOUT_SECONDS, StorageProvider, backend_message
from .signing import uri_encode_path

logger = logging.getLogger(__name__)

STORAGE_API_PATH = "/storage/v1"


@dataclass(frozen=True)
class SupabaseConfig:
    url: str
    anon_key: str
    bucket: str
    service_role_key: Optional[str] = None

    def __post_init__(self) -> None:
        missing = [name for name in ("url", "anon_key", "bucket") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Supabase storage requires {', '.join(missing)}",
                provider="supabase",
                operation="configure",
            )

    @property
    def project_url(self) -> str:
        return self.url.rstrip("/")

    @property
    def storage_url(self) -> str:
        return f"{self.project_url}{STORAGE_API_PATH}"


class SupabaseStorage(StorageProvider):
    """Object storage over the Supabase Storage REST API."""

    name = "supabase"

    def __init__(
        self,
        config: SupabaseConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(transport=transport, timeout=timeout)
        self._config = config

        logger.info(
            "Initialized Supabase storage provider",
            extra={
                "bucket": config.bucket,
                "url": config.project_url,
                "service_role": bool(config.service_role_key),
            },
        )

    @property
    def config(self) -> SupabaseConfig:
        return self._config

    def _auth_headers(self, elevated: bool = False) -> dict[str, str]:
        token = self._config.anon_key
        if elevated and self._config.service_role_key:
            token = self._config.service_role_key
        return {"Authorization": f"Bearer {token}", "apikey": token}

    def _object_url(self, path: str) -> str:
        return f"{self._config.storage_url}/object/{self._config.bucket}/{uri_encode_path(path)}"

    async def upload(self, request: UploadRequest) -> StoredFile:
        options = request.options
        file_name = options.file_name or generate_file_id(request.name)
        path = build_object_key(file_name, options.prefix)

        headers = self._auth_headers()
        headers["Content-Type"] = request.content_type
        if options.cache_control:
            headers["Cache-Control"] = options.cache_control
        if options.upsert:
            headers["x-upsert"] = "true"

        logger.info(
            "Uploading object to Supabase",
            extra={"bucket": self._config.bucket, "path": path, "size_bytes": request.size},
        )
        response = await self._send(
            "POST",
            self._object_url(path),
            operation="upload",
            headers=headers,
            content=request.data,
        )
        self._raise_for_status(response, "upload")

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        return StoredFile(
            file_id=path,
            original_name=request.name,
            size=request.size,
            content_type=request.content_type,
            url=self.public_url(path),
            provider_specific={
                "bucket": self._config.bucket,
                "path": path,
                "key": payload.get("Key", path) if isinstance(payload, dict) else path,
            },
        )

    async def delete(self, file_id: str) -> DeleteResult:
        try:
            response = await self._send(
                "DELETE",
                self._object_url(file_id),
                operation="delete",
                headers=self._auth_headers(elevated=True),
            )
        except Exception as e:
            logger.error("Supabase delete failed", extra={"path": file_id, "error": str(e)})
            return DeleteResult(success=False, message=str(e))

        if response.is_success or _is_not_found(response):
            return DeleteResult(success=True, message="File deleted")

        message = f"Delete failed: HTTP {response.status_code} {backend_message(response)}"
        logger.error("Supabase delete rejected", extra={"path": file_id, "error": message})
        return DeleteResult(success=False, message=message)

    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        if signed:
            return await self.signed_url(file_id, expires_in_seconds or DEFAULT_URL_EXPIRY_SECONDS)
        return self.public_url(file_id)

    def public_url(self, path: str) -> str:
        return (
            f"{self._config.storage_url}/object/public/"
            f"{self._config.bucket}/{uri_encode_path(path)}"
        )

    async def signed_url(self, path: str, expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        """Ask Supabase for a time-limited URL to a private object."""
        url = f"{self._config.storage_url}/object/sign/{self._config.bucket}/{uri_encode_path(path)}"
        response = await self._send(
            "POST",
            url,
            operation="resolve_url",
            headers=self._auth_headers(),
            json={"expiresIn": int(expires_in_seconds)},
        )
        self._raise_for_status(response, "resolve_url")

        try:
            signed_path = response.json().get("signedURL")
        except (ValueError, AttributeError):
            signed_path = None
        if not signed_path:
            raise ResolutionError(
                "Supabase did not return a signed URL",
                provider=self.name,
                operation="resolve_url",
            )
        if signed_path.startswith("http"):
            return signed_path
        if signed_path.startswith(STORAGE_API_PATH):
            return f"{self._config.project_url}{signed_path}"
        return f"{self._config.storage_url}/{signed_path.lstrip('/')}"

    async def list_files(self, prefix: str = "", limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        response = await self._send(
            "POST",
            f"{self._config.storage_url}/object/list/{self._config.bucket}",
            operation="list",
            headers=self._auth_headers(),
            json={"limit": limit, "offset": offset, "prefix": prefix},
        )
        self._raise_for_status(response, "list")
        payload = response.json()
        return payload if isinstance(payload, list) else []

    async def health_check(self) -> HealthStatus:
        try:
            await self.list_files("", limit=1)
        except Exception as e:
            return HealthStatus(HealthState.ERROR, f"Supabase Storage health check failed: {e}")
        return HealthStatus(
            HealthState.HEALTHY,
            "Supabase Storage connection OK",
            {"bucket": self._config.bucket, "url": self._config.project_url},
        )

    async def stats(self) -> Optional[dict[str, Any]]:
        return {
            "provider": self.name,
            "bucket": self._config.bucket,
            "url": self._config.project_url,
            "bucketInfo": await self._bucket_info(),
            "limitations": {
                "maxFileSize": "50MB (free) / 5GB (paid)",
                "supportedFormats": "all",
                "deleteSupport": True,
                "signedUrlSupport": True,
            },
        }

    async def _bucket_info(self) -> Optional[dict[str, Any]]:
        try:
            response = await self._send(
                "GET",
                f"{self._config.storage_url}/bucket/{self._config.bucket}",
                operation="stats",
                headers=self._auth_headers(),
            )
            if response.is_success:
                return response.json()
        except Exception as e:
            logger.warning("Failed to fetch Supabase bucket info", extra={"error": str(e)})
        return None


def _is_not_found(response: httpx.Response) -> bool:
    # Storage API wraps object-level 404s in a 400 with statusCode "404"
    if response.status_code == 404:
        return True
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and str(payload.get("statusCode")) == "404"
