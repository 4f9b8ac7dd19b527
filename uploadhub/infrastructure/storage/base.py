"""
Base class shared by all storage providers.

A provider is a small protocol client for one backend. It owns an immutable
config and nothing else: each call opens its own short-lived HTTP client, so
one provider instance can serve concurrent requests safely.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from ...core.storage.errors import TransportError, error_for_status
from ...core.storage.models import (
    DEFAULT_URL_EXPIRY_SECONDS,
    DeleteResult,
    HealthState,
    HealthStatus,
    StoredFile,
    UploadRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

_XML_MESSAGE = re.compile(r"<Message>(.*?)</Message>", re.DOTALL)
_MAX_ERROR_TEXT = 300


class StorageProvider(ABC):
    """
    Capability set every backend implements.

    `upload` and `resolve_url` are required. `delete`, `health_check` and
    `stats` have conservative defaults so a minimal backend still plugs
    into the registry.
    """

    name: str = "base"

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    @abstractmethod
    async def upload(self, request: UploadRequest) -> StoredFile:
        """Store the payload and describe where it went."""
        ...

    @abstractmethod
    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        """Turn a file id from `upload` into a fetchable URL."""
        ...

    async def delete(self, file_id: str) -> DeleteResult:
        return DeleteResult(success=False, message=f"{self.name} does not support deleting files")

    async def health_check(self) -> HealthStatus:
        return HealthStatus(HealthState.UNKNOWN, "Health check not implemented")

    async def stats(self) -> Optional[dict[str, Any]]:
        return None

    # -----------------------------------------------------------------------
    # HTTP plumbing
    # -----------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Perform one HTTP request.

        Network failures (including timeouts) become TransportError. The
        response is returned whatever its status; callers decide what a
        non-2xx means for their operation.
        """
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning(
                "Storage request failed at transport level",
                extra={
                    "provider": self.name,
                    "operation": operation,
                    "method": method,
                    "error": str(e) or type(e).__name__,
                },
            )
            raise TransportError(
                f"Network error: {str(e) or type(e).__name__}",
                provider=self.name,
                operation=operation,
            ) from e

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if response.is_success:
            return
        message = backend_message(response)
        logger.error(
            "Storage backend rejected request",
            extra={
                "provider": self.name,
                "operation": operation,
                "status_code": response.status_code,
                "error": message,
            },
        )
        raise error_for_status(
            response.status_code,
            message,
            provider=self.name,
            operation=operation,
        )


def backend_message(response: httpx.Response) -> str:
    """
    Pull the most useful diagnostic out of an error response.

    JSON backends put it under "message", "description" or "error"; S3
    returns an XML document with a <Message> element.
    """
    text = response.text or ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("message", "description", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    match = _XML_MESSAGE.search(text)
    if match:
        return match.group(1).strip()
    text = text.strip()
    if text:
        return text[:_MAX_ERROR_TEXT]
    return response.reason_phrase or f"HTTP {response.status_code}"
