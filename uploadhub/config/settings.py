"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and an optional .env
file) with sensible defaults. Variable names follow the conventions of the
backends themselves: `AWS_*` for S3, `MINIO_*`, `SUPABASE_*`, and `TG_*` for
the Telegram bot.

A storage backend is enabled by giving it credentials. If any of its
required values is empty, the backend is simply left out of the registry.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.storage.helpers import (
    DEFAULT_ALLOWED_TYPES,
    UploadPolicy,
    parse_allowed_types,
    parse_max_file_size,
)


# Order matters: providers are registered in this order.
STORAGE_PROVIDER_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "telegram": ("tg_bot_token", "tg_chat_id"),
    "s3": ("aws_access_key_id", "aws_secret_access_key", "aws_s3_bucket"),
    "minio": ("minio_endpoint", "minio_access_key", "minio_secret_key", "minio_bucket"),
    "supabase": ("supabase_url", "supabase_anon_key", "supabase_bucket"),
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables. Names are
    case-insensitive, so `TG_Bot_Token` works as well as `TG_BOT_TOKEN`.
    """

    # API Configuration
    api_title: str = "uploadhub API"
    api_version: str = "v1"

    # Registry
    default_storage_provider: str = Field(
        default="telegram",
        description="Provider used when an upload does not name one.",
    )
    storage_request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for every outbound request to a storage backend.",
    )

    # Telegram
    tg_bot_token: str = Field(default="", description="Bot API token")
    tg_chat_id: str = Field(default="", description="Chat or channel that receives uploads")
    tg_api_base: str = Field(default="https://api.telegram.org", description="Bot API base URL")
    tg_file_route_prefix: str = Field(
        default="/file",
        description="Route under which the web layer serves Telegram-backed files.",
    )

    # AWS S3 (Signature V4)
    aws_access_key_id: str = Field(default="", description="S3 access key ID")
    aws_secret_access_key: str = Field(default="", description="S3 secret access key")
    aws_region: str = Field(default="us-east-1", description="S3 region")
    aws_s3_bucket: str = Field(default="", description="S3 bucket name")
    aws_s3_endpoint: Optional[str] = Field(
        default=None,
        description="S3-compatible endpoint. Defaults to the regional AWS endpoint.",
    )
    aws_s3_public_url: Optional[str] = Field(
        default=None,
        description="Public base URL for objects (CDN or custom domain).",
    )
    aws_s3_force_path_style: Optional[bool] = Field(
        default=None,
        description="Force path-style addressing. Auto-detected from the endpoint when unset.",
    )

    # MinIO (Signature V2)
    minio_endpoint: str = Field(default="", description="MinIO host, without scheme")
    minio_access_key: str = Field(default="", description="MinIO access key")
    minio_secret_key: str = Field(default="", description="MinIO secret key")
    minio_bucket: str = Field(default="", description="MinIO bucket name")
    minio_region: str = Field(default="us-east-1", description="MinIO region")
    minio_use_ssl: bool = Field(default=True, description="Use HTTPS to reach MinIO")
    minio_port: Optional[int] = Field(default=None, description="MinIO port (443/80 by default)")
    minio_public_url: Optional[str] = Field(default=None, description="Public base URL for objects")

    # Supabase Storage
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_anon_key: str = Field(default="", description="Supabase anon key")
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        description="Service role key, used for deletes when set.",
    )
    supabase_bucket: str = Field(default="", description="Supabase Storage bucket")

    # Upload admission
    max_file_size: str = Field(
        default="50MB",
        description="Largest accepted upload, e.g. 20MB or 1.5GB.",
    )
    allowed_file_types: str = Field(
        default=DEFAULT_ALLOWED_TYPES,
        description="Comma-separated MIME types, MIME families or extensions.",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def configured_providers(self) -> list[str]:
        """Names of the storage providers whose required settings are all present."""
        return [
            name
            for name, fields in STORAGE_PROVIDER_REQUIREMENTS.items()
            if all(str(getattr(self, field) or "").strip() for field in fields)
        ]

    def missing_provider_fields(self, name: str) -> list[str]:
        """Environment variable names still needed to enable a provider."""
        fields = STORAGE_PROVIDER_REQUIREMENTS.get(name, ())
        return [
            field.upper()
            for field in fields
            if not str(getattr(self, field) or "").strip()
        ]

    def upload_policy(self) -> UploadPolicy:
        return UploadPolicy(
            max_file_size=parse_max_file_size(self.max_file_size),
            allowed_types=parse_allowed_types(self.allowed_file_types),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()
