"""
Domain models for file uploads.

These are plain dataclasses with no knowledge of HTTP, signing or any
particular backend. Providers produce a StoredFile; only the registry turns
that into an UploadResult, so every backend yields the same envelope.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_URL_EXPIRY_SECONDS = 3600


@dataclass(frozen=True)
class UploadOptions:
    """
    Per-call options bag.

    Every field is optional. Providers ignore the ones they do not
    understand (Telegram has no prefix, S3 has no upsert).
    """
    provider: Optional[str] = None
    prefix: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    public: bool = True
    signed: bool = False
    expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS
    file_name: Optional[str] = None
    cache_control: Optional[str] = None
    upsert: bool = False
    caption: Optional[str] = None


@dataclass
class UploadRequest:
    """
    A single file handed over by the caller.

    The payload is assumed to have passed admission checks already.
    `size` defaults to the payload length when not declared.
    """
    data: bytes
    name: str
    content_type: str = DEFAULT_CONTENT_TYPE
    size: Optional[int] = None
    options: UploadOptions = field(default_factory=UploadOptions)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Upload name cannot be empty")
        if self.data is None:
            self.data = b""
        if self.size is None:
            self.size = len(self.data)
        if not self.content_type:
            self.content_type = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class StoredFile:
    """What a provider reports after a successful upload."""
    file_id: str
    original_name: str
    size: int
    content_type: str
    url: str
    provider_specific: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadResult:
    """
    The normalized envelope returned to callers.

    `file_id` plus `provider` is all a caller needs to delete the file or
    resolve its URL later.
    """
    file_id: str
    original_name: str
    size: int
    content_type: str
    url: str
    provider: str
    timestamp_millis: int
    provider_specific: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stored(cls, stored: StoredFile, provider: str, timestamp_millis: int) -> "UploadResult":
        return cls(
            file_id=stored.file_id,
            original_name=stored.original_name,
            size=stored.size,
            content_type=stored.content_type,
            url=stored.url,
            provider=provider,
            timestamp_millis=timestamp_millis,
            provider_specific=dict(stored.provider_specific),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileId": self.file_id,
            "originalName": self.original_name,
            "size": self.size,
            "contentType": self.content_type,
            "url": self.url,
            "provider": self.provider,
            "timestamp": self.timestamp_millis,
            "providerSpecific": dict(self.provider_specific),
        }


@dataclass(frozen=True)
class DeleteResult:
    success: bool
    message: str


class HealthState(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HealthStatus:
    """Result of a single provider health probe. Never cached."""
    status: HealthState
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthState.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class FailedUpload:
    name: str
    error: str


@dataclass
class BatchUploadResult:
    """Summary of a sequential multi-file upload."""
    succeeded: list[UploadResult] = field(default_factory=list)
    failed: list[FailedUpload] = field(default_factory=list)
    total: int = 0

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def error_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": [r.to_dict() for r in self.succeeded],
            "failed": [{"name": f.name, "error": f.error} for f in self.failed],
            "total": self.total,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }
