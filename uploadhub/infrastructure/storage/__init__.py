"""
Storage backends: Telegram, S3 (SigV4), MinIO (SigV2) and Supabase.

All providers share the StorageProvider base and talk to their backend over
httpx. Use `create_storage_manager(settings)` to get a registry with every
configured backend.
"""

from .base import StorageProvider
from .factory import create_storage_manager
from .minio import MinIOConfig, MinIOStorage
from .s3 import S3Config, S3Storage
from .supabase import SupabaseConfig, SupabaseStorage
from .telegram import TelegramConfig, TelegramStorage

__all__ = [
    "MinIOConfig",
    "MinIOStorage",
    "S3Config",
    "S3Storage",
    "StorageProvider",
    "SupabaseConfig",
    "SupabaseStorage",
    "TelegramConfig",
    "TelegramStorage",
    "create_storage_manager",
]
