"""
S3 storage provider (AWS Signature Version 4).

Talks the S3 REST API directly: PUT to upload, DELETE to remove, a one-item
bucket listing as health probe. Works against AWS itself and against any
S3-compatible endpoint (R2, Wasabi, MinIO in V4 mode) through `endpoint`.

Addressing style is picked from the endpoint: AWS hosts get virtual-hosted
URLs (`bucket.s3.region.amazonaws.com/key`), anything else gets path-style
URLs (`endpoint/bucket/key`). `force_path_style` overrides the guess.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

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
    EMPTY_PAYLOAD_SHA256,
    amz_timestamps,
    canonical_query_string,
    presign_v4_query,
    sha256_hex,
    sign_v4,
    uri_encode_path,
)

logger = logging.getLogger(__name__)

_AWS_S3_HOST = re.compile(r"^s3([.-][a-z0-9-]+)*\.amazonaws\.com(\.cn)?$", re.IGNORECASE)


@dataclass(frozen=True)
class S3Config:
    """Credentials and endpoint for an S3 bucket."""
    access_key_id: str
    secret_access_key: str
    bucket: str
    region: str = "us-east-1"
    endpoint: Optional[str] = None
    public_url: Optional[str] = None
    force_path_style: Optional[bool] = None

    def __post_init__(self) -> None:
        missing = [
            name for name in ("access_key_id", "secret_access_key", "bucket")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"S3 storage requires {', '.join(missing)}",
                provider="s3",
                operation="configure",
            )

    @property
    def endpoint_url(self) -> str:
        endpoint = (self.endpoint or f"https://s3.{self.region}.amazonaws.com").rstrip("/")
        if "://" not in endpoint:
            endpoint = f"https://{endpoint}"
        return endpoint

    @property
    def path_style(self) -> bool:
        if self.force_path_style is not None:
            return self.force_path_style
        host = urlsplit(self.endpoint_url).hostname or ""
        return not _AWS_S3_HOST.match(host)

    @property
    def public_base_url(self) -> str:
        if self.public_url:
            return self.public_url.rstrip("/")
        if self.path_style:
            return f"{self.endpoint_url}/{self.bucket}"
        parts = urlsplit(self.endpoint_url)
        return f"{parts.scheme}://{self.bucket}.{parts.netloc}"


class S3Storage(StorageProvider):
    """Object storage over the S3 REST API with SigV4 request signing."""

    name = "s3"
    service = "s3"

    def __init__(
        self,
        config: S3Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(transport=transport, timeout=timeout)
        self._config = config
        self._clock = clock

        logger.info(
            "Initialized S3 storage provider",
            extra={
                "bucket": config.bucket,
                "region": config.region,
                "endpoint": config.endpoint_url,
                "path_style": config.path_style,
            },
        )

    @property
    def config(self) -> S3Config:
        return self._config

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

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
            "Uploading object to S3",
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
                "region": self._config.region,
                "etag": response.headers.get("etag"),
            },
        )

    async def delete(self, file_id: str) -> DeleteResult:
        try:
            response = await self._signed_request("DELETE", file_id, operation="delete")
        except Exception as e:
            logger.error("S3 delete failed", extra={"key": file_id, "error": str(e)})
            return DeleteResult(success=False, message=str(e))

        if response.is_success or response.status_code == 404:
            return DeleteResult(success=True, message="File deleted")

        message = f"Delete failed: HTTP {response.status_code} {backend_message(response)}"
        logger.error("S3 delete rejected", extra={"key": file_id, "error": message})
        return DeleteResult(success=False, message=message)

    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        if signed:
            return self.presigned_url(file_id, expires_in_seconds)
        return self.public_url(file_id)

    async def health_check(self) -> HealthStatus:
        try:
            response = await self._signed_request(
                "GET",
                "",
                operation="health_check",
                query={"max-keys": "1"},
            )
        except Exception as e:
            return HealthStatus(HealthState.ERROR, f"S3 health check failed: {e}")

        if response.is_success:
            return HealthStatus(
                HealthState.HEALTHY,
                "S3 connection OK",
                {
                    "bucket": self._config.bucket,
                    "region": self._config.region,
                    "addressing": "path" if self._config.path_style else "virtual-hosted",
                },
            )
        return HealthStatus(
            HealthState.UNHEALTHY,
            f"S3 connection failed: HTTP {response.status_code} {backend_message(response)}",
        )

    async def stats(self) -> Optional[dict[str, Any]]:
        return {
            "provider": self.name,
            "bucket": self._config.bucket,
            "region": self._config.region,
            "endpoint": self._config.endpoint_url,
            "limitations": {
                "maxFileSize": "5TB",
                "supportedFormats": "all",
                "deleteSupport": True,
                "presignedUrlSupport": True,
            },
        }

    # -----------------------------------------------------------------------
    # URLs
    # -----------------------------------------------------------------------

    def public_url(self, key: str) -> str:
        return f"{self._config.public_base_url}/{uri_encode_path(key)}"

    def presigned_url(self, key: str, expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        base_url, canonical_uri, host = self._location(key)
        amz_date, _ = amz_timestamps(self._now())
        query = presign_v4_query(
            method="GET",
            canonical_uri=canonical_uri,
            host=host,
            region=self._config.region,
            service=self.service,
            access_key=self._config.access_key_id,
            secret_key=self._config.secret_access_key,
            amz_date=amz_date,
            expires_in_seconds=expires_in_seconds,
        )
        return f"{base_url}{canonical_uri}?{query}"

    def _location(self, key: str) -> tuple[str, str, str]:
        """Return `(scheme://host, canonical_uri, host)` for a key ("" = bucket)."""
        parts = urlsplit(self._config.endpoint_url)
        encoded_key = uri_encode_path(key.lstrip("/"))
        if self._config.path_style:
            host = parts.netloc
            canonical_uri = f"/{self._config.bucket}/{encoded_key}" if encoded_key else f"/{self._config.bucket}"
        else:
            host = f"{self._config.bucket}.{parts.netloc}"
            canonical_uri = f"/{encoded_key}"
        return f"{parts.scheme}://{host}", canonical_uri, host

    def _now(self) -> Optional[datetime]:
        return self._clock() if self._clock else None

    async def _signed_request(
        self,
        method: str,
        key: str,
        *,
        operation: str,
        headers: Optional[dict[str, str]] = None,
        body: bytes = b"",
        query: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        base_url, canonical_uri, host = self._location(key)
        amz_date, date_stamp = amz_timestamps(self._now())
        payload_hash = sha256_hex(body) if body else EMPTY_PAYLOAD_SHA256
        canonical_query = canonical_query_string(query)

        request_headers = dict(headers or {})
        request_headers.update({
            "host": host,
            "x-amz-date": amz_date,
            "x-amz-content-sha256": payload_hash,
        })
        signature = sign_v4(
            method=method,
            canonical_uri=canonical_uri,
            canonical_query=canonical_query,
            headers=request_headers,
            payload_hash=payload_hash,
            region=self._config.region,
            service=self.service,
            access_key=self._config.access_key_id,
            secret_key=self._config.secret_access_key,
            amz_date=amz_date,
            date_stamp=date_stamp,
        )
        request_headers["Authorization"] = signature.authorization

        url = f"{base_url}{canonical_uri}"
        if canonical_query:
            url = f"{url}?{canonical_query}"
        return await self._send(
            method,
            url,
            operation=operation,
            headers=request_headers,
            content=body or None,
        )
