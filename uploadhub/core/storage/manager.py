"""
Storage manager: the provider registry.

The manager owns a name -> provider mapping and is the single entry point
callers use. It resolves the target provider (explicit name or configured
default), delegates the operation, and stamps upload results with the
provider name and a timestamp so every backend produces the same envelope.

Build one manager per operational context (a request, a worker) rather than
sharing a global; providers carry only immutable config, so construction is
cheap. See `uploadhub.infrastructure.storage.factory` for the
settings-driven constructor.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from .errors import ProviderNotFoundError, StorageError
from .helpers import current_millis
from .models import (
    DEFAULT_URL_EXPIRY_SECONDS,
    BatchUploadResult,
    DeleteResult,
    FailedUpload,
    HealthState,
    HealthStatus,
    StoredFile,
    UploadOptions,
    UploadRequest,
    UploadResult,
)

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "telegram"


class StorageBackend(Protocol):
    """
    What the manager needs from a provider.

    The infrastructure layer supplies concrete implementations; tests can
    pass anything with these coroutines.
    """

    async def upload(self, request: UploadRequest) -> StoredFile:
        ...

    async def delete(self, file_id: str) -> DeleteResult:
        ...

    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        ...

    async def health_check(self) -> HealthStatus:
        ...

    async def stats(self) -> Optional[dict[str, Any]]:
        ...


class StorageManager:
    """Registry and dispatcher for storage providers."""

    def __init__(
        self,
        providers: Optional[Mapping[str, StorageBackend]] = None,
        default_provider: Optional[str] = None,
        clock: Callable[[], int] = current_millis,
    ) -> None:
        self._providers: dict[str, StorageBackend] = dict(providers or {})
        self._default_provider = default_provider or FALLBACK_PROVIDER
        self._clock = clock

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    @property
    def default_provider_name(self) -> str:
        return self._default_provider

    def get_available_providers(self) -> list[str]:
        return list(self._providers.keys())

    def is_provider_available(self, name: str) -> bool:
        return name in self._providers

    def resolve(self, name: str) -> StorageBackend:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(
                f"Storage provider '{name}' is not configured or unavailable",
                provider=name,
                operation="resolve",
            )
        return provider

    def default_provider(self) -> StorageBackend:
        return self.resolve(self._default_provider)

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    async def upload(self, request: UploadRequest) -> UploadResult:
        """
        Upload one file to the requested (or default) provider.

        Errors from the provider propagate unchanged; the caller decides
        whether to retry or fall back to another provider.
        """
        provider_name = request.options.provider or self._default_provider
        provider = self.resolve(provider_name)

        logger.info(
            "Uploading file",
            extra={
                "provider": provider_name,
                "file_name": request.name,
                "size_bytes": request.size,
            },
        )
        try:
            stored = await provider.upload(request)
        except StorageError as e:
            logger.error(
                "Upload failed",
                extra={"provider": provider_name, "file_name": request.name, "error": str(e)},
            )
            raise

        return UploadResult.from_stored(stored, provider=provider_name, timestamp_millis=self._clock())

    async def upload_many(
        self,
        requests: Iterable[UploadRequest],
        options: Optional[UploadOptions] = None,
    ) -> BatchUploadResult:
        """
        Upload files one after another.

        Files go one at a time: results keep input order and the caller
        holds at most one connection to a backend. `options`, when
        given, replaces each request's own options. One failure never stops
        the rest of the batch.
        """
        batch = BatchUploadResult()
        for request in requests:
            batch.total += 1
            if options is not None:
                request = replace(request, options=options)
            try:
                batch.succeeded.append(await self.upload(request))
            except Exception as e:
                batch.failed.append(FailedUpload(name=request.name, error=str(e)))

        logger.info(
            "Batch upload finished",
            extra={
                "total": batch.total,
                "success_count": batch.success_count,
                "error_count": batch.error_count,
            },
        )
        return batch

    async def delete(self, file_id: str, provider_name: str) -> DeleteResult:
        provider = self.resolve(provider_name)
        result = await provider.delete(file_id)
        logger.info(
            "Delete finished",
            extra={"provider": provider_name, "file_id": file_id, "success": result.success},
        )
        return result

    async def resolve_url(
        self,
        file_id: str,
        provider_name: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        provider = self.resolve(provider_name)
        return await provider.resolve_url(file_id, signed=signed, expires_in_seconds=expires_in_seconds)

    async def provider_stats(self, provider_name: str) -> Optional[dict[str, Any]]:
        provider = self.resolve(provider_name)
        stats = getattr(provider, "stats", None)
        if stats is None:
            return None
        return await stats()

    async def health_check_all(self) -> dict[str, HealthStatus]:
        """
        Probe every registered provider concurrently.

        Always returns one entry per provider. A check that raises is
        reported as an error status instead of propagating.
        """
        names = list(self._providers.keys())
        statuses = await asyncio.gather(*(self._safe_health_check(name) for name in names))
        return dict(zip(names, statuses))

    async def _safe_health_check(self, name: str) -> HealthStatus:
        provider = self._providers[name]
        check = getattr(provider, "health_check", None)
        if check is None:
            return HealthStatus(HealthState.UNKNOWN, "Health check not implemented")
        try:
            return await check()
        except Exception as e:
            logger.error("Health check raised", extra={"provider": name, "error": str(e)})
            return HealthStatus(HealthState.ERROR, str(e) or type(e).__name__)
