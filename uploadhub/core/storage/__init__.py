"""
File storage domain: models, errors, naming helpers and the provider registry.

Nothing here knows about HTTP or any specific backend. Concrete providers
live in `uploadhub.infrastructure.storage`.
"""

from .errors import (
    BackendError,
    ConfigurationError,
    ProviderNotFoundError,
    ResolutionError,
    StorageError,
    TransportError,
    ValidationError,
)
from .manager import StorageBackend, StorageManager
from .models import (
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

__all__ = [
    "BackendError",
    "BatchUploadResult",
    "ConfigurationError",
    "DeleteResult",
    "FailedUpload",
    "HealthState",
    "HealthStatus",
    "ProviderNotFoundError",
    "ResolutionError",
    "StorageBackend",
    "StorageError",
    "StorageManager",
    "StoredFile",
    "TransportError",
    "UploadOptions",
    "UploadRequest",
    "UploadResult",
    "ValidationError",
]
