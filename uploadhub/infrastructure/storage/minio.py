"""
MinIO storage provider (legacy AWS Signature Version 2).

Same object layout as the S3 provider but signed with HMAC-SHA1 V2
signatures, which older MinIO deployments and many S3 clones still accept.
Supports presigned GET URLs with a caller-chosen expiry.
"""

import logging
import time
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, Callable, Optional

import httpx

from ...core.storage.errors import ConfigurationError
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
from .signing import (
    authorization_v2,
    presign_v2_query,
    sign_v2,
    string_to_sign_v2,
    uri_encode_path,
)

logger = logging.getLogger(__name__)


def _strip_scheme(endpoint: str) -> str:
    endpoint = (endpoint or "").strip()
    for scheme in ("https://", "http://"):
        if endpoint.lower().startswith(scheme):
            endpoint = endpoint[len(scheme):]
    return endpoint.rstrip("/")


@dataclass(frozen=True)
class MinIOConfig:
    """
    Connection settings for a MinIO server.

    `endpoint` is a bare host ("minio.example.com"); a scheme prefix is
    tolerated and stripped. The port defaults to 443 or 80 depending on
    `use_ssl` and is left out of URLs when it is the default one.
    """
    endpoint: str
    access_key: str
    secret_key: str
    bucket: str
    region: str = "us-east-1"
    use_ssl: bool = True
    port: Optional[int] = None
    public_url: Optional[str] = None

    def __post_init__(self) -> None:
        missing = [
            name for name in ("endpoint", "access_key", "secret_key", "bucket")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"MinIO storage requires {', '.join(missing)}",
                provider="minio",
                operation="configure",
            )

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return 443 if self.use_ssl else 80

    @property
    def host(self) -> str:
        host = _strip_scheme(self.endpoint)
        default_port = 443 if self.use_ssl else 80
        if self.effective_port != default_port:
            return f"{host}:{self.effective_port}"
        return host

    @property
    def base_url(self) -> str:
        protocol = "https" if self.use_ssl else "http"
        return f"{protocol}://{self.host}"

    @property
    def public_base_url(self) -> str:
        if self.public_url:
            return self.public_url.rstrip("/")
        return f"{self.base_url}/{self.bucket}"


class MinIOStorage(StorageProvider):
    """Object storage over the S3 REST API with V2 request signing."""

    name = "minio"

    def __init__(
        self,
        config: MinIOConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(transport=transport, timeout=timeout)
        self._config = config
        self._clock = clock or time.time

        logger.info(
            "Initialized MinIO storage provider",
            extra={"bucket": config.bucket, "endpoint": config.base_url},
        )

    @property
    def config(self) -> MinIOConfig:
        return self._config

    async def upload(self, request: UploadRequest) -> StoredFile:
        options = request.options
        file_name = options.file_name or generate_file_id(request.name)
        key = build_object_key(file_name, options.prefix)

        headers = {
            "Content-Type": request.content_type,
            "Content-Length": str(len(request.data)),
        }
        if options.public:
            headers["x-amz-acl"] = "public-read"
        for meta_key, meta_value in options.metadata.items():
            headers[f"x-amz-meta-{meta_key.lower()}"] = str(meta_value)

        logger.info(
            "Uploading object to MinIO",
            extra={"bucket": self._config.bucket, "key": key, "size_bytes": request.size},
        )
        response = await self._signed_request(
            "PUT",
            key,
            operation="upload",
            headers=headers,
            body=request.data,
        )
        self._raise_for_status(response, "upload")

        return StoredFile(
            file_id=key,
            original_name=request.name,
            size=request.size,
            content_type=request.content_type,
            url=self.public_url(key),
            provider_specific={
                "bucket": self._config.bucket,
                "key": key,
                "etag": response.headers.get("etag"),
            },
        )

    async def delete(self, file_id: str) -> DeleteResult:
        try:
            response = await self._signed_request("DELETE", file_id, operation="delete")
        except Exception as e:
            logger.error("MinIO delete failed", extra={"key": file_id, "error": str(e)})
            return DeleteResult(success=False, message=str(e))

        if response.is_success or response.status_code == 404:
            return DeleteResult(success=True, message="File deleted")

        message = f"Delete failed: HTTP {response.status_code} {backend_message(response)}"
        logger.error("MinIO delete rejected", extra={"key": file_id, "error": message})
        return DeleteResult(success=False, message=message)

    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        if signed:
            return self.presigned_url(file_id, expires_in_seconds or DEFAULT_URL_EXPIRY_SECONDS)
        return self.public_url(file_id)

    async def health_check(self) -> HealthStatus:
        try:
            response = await self._signed_request(
                "GET",
                "",
                operation="health_check",
                query="max-keys=1",
            )
        except Exception as e:
            return HealthStatus(HealthState.ERROR, f"MinIO health check failed: {e}")

        if response.is_success:
            return HealthStatus(
                HealthState.HEALTHY,
                "MinIO connection OK",
                {"bucket": self._config.bucket, "endpoint": self._config.host},
            )
        return HealthStatus(
            HealthState.UNHEALTHY,
            f"MinIO connection failed: HTTP {response.status_code} {backend_message(response)}",
        )

    async def stats(self) -> Optional[dict[str, Any]]:
        return {
            "provider": self.name,
            "bucket": self._config.bucket,
            "endpoint": self._config.host,
            "region": self._config.region,
            "useSSL": self._config.use_ssl,
            "port": self._config.effective_port,
            "limitations": {
                "maxFileSize": "5TB",
                "supportedFormats": "all",
                "deleteSupport": True,
                "presignedUrlSupport": True,
            },
        }

    def public_url(self, key: str) -> str:
        return f"{self._config.public_base_url}/{uri_encode_path(key)}"

    def presigned_url(self, key: str, expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        expires_at = int(self._clock()) + int(expires_in_seconds)
        resource = self._resource(key)
        query = presign_v2_query(
            access_key=self._config.access_key,
            secret_key=self._config.secret_key,
            method="GET",
            canonicalized_resource=resource,
            expires_at=expires_at,
        )
        return f"{self._config.base_url}{resource}?{query}"

    def _resource(self, key: str) -> str:
        return f"/{self._config.bucket}/{uri_encode_path(key.lstrip('/'))}"

    async def _signed_request(
        self,
        method: str,
        key: str,
        *,
        operation: str,
        headers: Optional[dict[str, str]] = None,
        body: bytes = b"",
        query: str = "",
    ) -> httpx.Response:
        resource = self._resource(key)
        request_headers = dict(headers or {})
        request_headers["Date"] = formatdate(self._clock(), usegmt=True)

        to_sign = string_to_sign_v2(
            method,
            resource,
            content_type=request_headers.get("Content-Type", ""),
            date=request_headers["Date"],
            amz_headers=request_headers,
        )
        request_headers["Authorization"] = authorization_v2(
            self._config.access_key,
            sign_v2(self._config.secret_key, to_sign),
        )

        url = f"{self._config.base_url}{resource}"
        if query:
            url = f"{url}?{query}"
        return await self._send(
            method,
            url,
            operation=operation,
            headers=request_headers,
            content=body or None,
        )
