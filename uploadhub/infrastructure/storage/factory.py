"""
Build a StorageManager from application settings.

Each backend is instantiated only when all of its required settings are
present (see `STORAGE_PROVIDER_REQUIREMENTS`); a half-configured backend is
skipped, never an error.
"""

import logging
from typing import Callable, Optional

import httpx

from ...config.settings import Settings
from ...core.storage.manager import StorageManager
from .base import StorageProvider
from .minio import MinIOConfig, MinIOStorage
from .s3 import S3Config, S3Storage
from .supabase import SupabaseConfig, SupabaseStorage
from .telegram import TelegramConfig, TelegramStorage

logger = logging.getLogger(__name__)

ProviderBuilder = Callable[[Settings, Optional[httpx.AsyncBaseTransport]], StorageProvider]


def _build_telegram(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> StorageProvider:
    config = TelegramConfig(
        bot_token=settings.tg_bot_token,
        chat_id=settings.tg_chat_id,
        api_base=settings.tg_api_base,
        file_route_prefix=settings.tg_file_route_prefix,
    )
    return TelegramStorage(config, transport=transport, timeout=settings.storage_request_timeout_seconds)


def _build_s3(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> StorageProvider:
    config = S3Config(
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        bucket=settings.aws_s3_bucket,
        region=settings.aws_region,
        endpoint=settings.aws_s3_endpoint,
        public_url=settings.aws_s3_public_url,
        force_path_style=settings.aws_s3_force_path_style,
    )
    return S3Storage(config, transport=transport, timeout=settings.storage_request_timeout_seconds)


def _build_minio(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> StorageProvider:
    config = MinIOConfig(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        bucket=settings.minio_bucket,
        region=settings.minio_region,
        use_ssl=settings.minio_use_ssl,
        port=settings.minio_port,
        public_url=settings.minio_public_url,
    )
    return MinIOStorage(config, transport=transport, timeout=settings.storage_request_timeout_seconds)


def _build_supabase(settings: Settings, transport: Optional[httpx.AsyncBaseTransport]) -> StorageProvider:
    config = SupabaseConfig(
        url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        bucket=settings.supabase_bucket,
        service_role_key=settings.supabase_service_role_key,
    )
    return SupabaseStorage(config, transport=transport, timeout=settings.storage_request_timeout_seconds)


PROVIDER_BUILDERS: dict[str, ProviderBuilder] = {
    "telegram": _build_telegram,
    "s3": _build_s3,
    "minio": _build_minio,
    "supabase": _build_supabase,
}


def create_storage_manager(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StorageManager:
    """
    Create a registry holding every fully configured provider.

    Args:
        settings: Application settings with backend credentials
        transport: Optional httpx transport shared by all providers
            (tests pass an httpx.MockTransport here)

    Returns:
        StorageManager with zero or more providers registered
    """
    providers: dict[str, StorageProvider] = {}
    for name in settings.configured_providers():
        providers[name] = PROVIDER_BUILDERS[name](settings, transport)

    logger.debug(
        "Created storage manager",
        extra={
            "providers": list(providers),
            "default_provider": settings.default_storage_provider,
        },
    )
    return StorageManager(providers, default_provider=settings.default_storage_provider)
