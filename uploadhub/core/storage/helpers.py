"""
Shared helpers: file naming and upload admission checks.

Naming is used by every object-store provider. The admission helpers are
for callers that want to reject a payload before it reaches the registry;
the registry itself never enforces size or type limits.
"""

import re
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Optional


_RANDOM_ALPHABET = string.ascii_lowercase + string.digits
_RANDOM_LENGTH = 6
FALLBACK_EXTENSION = "bin"

DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024
DEFAULT_ALLOWED_TYPES = "image/jpeg,image/png,image/gif,image/webp"

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)?\s*$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def file_extension(name: str) -> str:
    """Lower-cased extension without the dot, or "bin" when there is none."""
    base = name.rsplit("/", 1)[-1]
    if "." not in base:
        return FALLBACK_EXTENSION
    ext = base.rsplit(".", 1)[-1].lower()
    return ext or FALLBACK_EXTENSION


def random_suffix(length: int = _RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def generate_file_id(original_name: str, timestamp_millis: Optional[int] = None) -> str:
    """Build `<epochMillis>_<6 random [a-z0-9]>.<ext>`."""
    if timestamp_millis is None:
        timestamp_millis = current_millis()
    return f"{timestamp_millis}_{random_suffix()}.{file_extension(original_name)}"


def build_object_key(file_name: str, prefix: Optional[str] = None) -> str:
    """Join an optional prefix and a file name with a single slash."""
    prefix = (prefix or "").strip("/")
    if prefix:
        return f"{prefix}/{file_name}"
    return file_name


# ---------------------------------------------------------------------------
# Admission helpers
# ---------------------------------------------------------------------------

def parse_max_file_size(raw: Optional[str]) -> int:
    """
    Parse a human size such as "50MB", "1.5 GB" or "2048".

    A bare number is read as megabytes. Anything unparseable falls back to
    50MB.
    """
    if not raw:
        return DEFAULT_MAX_FILE_SIZE
    match = _SIZE_PATTERN.match(raw)
    if not match:
        return DEFAULT_MAX_FILE_SIZE
    value = float(match.group(1))
    unit = (match.group(2) or "MB").upper()
    return int(value * _SIZE_MULTIPLIERS[unit])


def parse_allowed_types(raw: Optional[str]) -> list[str]:
    if raw is None:
        raw = DEFAULT_ALLOWED_TYPES
    return [t.strip().lower() for t in raw.split(",") if t.strip()]


def is_type_allowed(name: str, content_type: str, allowed: list[str]) -> bool:
    """
    Check a file against an allow-list.

    Entries may be a full MIME type ("image/png"), a MIME family ("image"),
    a bare extension ("pdf") or the wildcard "*/*". An empty list allows
    everything.
    """
    if not allowed:
        return True
    mime = (content_type or "").lower()
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    for entry in allowed:
        if entry == "*/*" or mime == entry or ext == entry:
            return True
        if mime.startswith(entry + "/"):
            return True
    return False


def validate_file_size(size: int, max_size: Optional[int]) -> bool:
    if not max_size:
        return True
    return size <= max_size


@dataclass(frozen=True)
class UploadPolicy:
    """Size and type limits a caller may apply before uploading."""
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    allowed_types: list[str] = field(default_factory=lambda: parse_allowed_types(None))

    def check(self, name: str, content_type: str, size: int) -> Optional[str]:
        """Return a rejection reason, or None when the file is admitted."""
        if not validate_file_size(size, self.max_file_size):
            return f"File exceeds size limit ({self.max_file_size} bytes)"
        if not is_type_allowed(name, content_type, self.allowed_types):
            return "File type is not allowed"
        return None
