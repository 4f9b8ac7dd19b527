"""
Error taxonomy for the storage layer.

Every error carries the provider name and the operation that failed so the
registry and its callers can render a useful message without knowing
anything about the backend that produced it.
"""

from typing import Optional


class StorageError(Exception):
    """Base class for all storage failures."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.operation = operation
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = ""
        if self.provider and self.operation:
            prefix = f"[{self.provider}.{self.operation}] "
        elif self.provider:
            prefix = f"[{self.provider}] "
        if self.status_code is not None:
            return f"{prefix}{self.message} (HTTP {self.status_code})"
        return f"{prefix}{self.message}"


class ConfigurationError(StorageError):
    """A provider was constructed without a required setting."""
    pass


class ProviderNotFoundError(StorageError):
    """The requested provider name is not registered."""
    pass


class ValidationError(StorageError):
    """The backend rejected the payload (size, type, malformed request)."""
    pass


class TransportError(StorageError):
    """Network-level failure: connection refused, reset, timeout."""
    pass


class BackendError(StorageError):
    """The backend answered with a non-success status."""
    pass


class ResolutionError(StorageError):
    """A file URL or remote path could not be resolved."""
    pass


# Statuses that mean "your payload is wrong" rather than "the backend failed"
VALIDATION_STATUSES = frozenset({400, 411, 413, 415, 422})


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: str,
    operation: str,
) -> StorageError:
    """Map a non-success HTTP status onto the matching error type."""
    error_cls = ValidationError if status_code in VALIDATION_STATUSES else BackendError
    return error_cls(
        message,
        provider=provider,
        operation=operation,
        status_code=status_code,
    )
