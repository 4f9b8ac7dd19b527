"""
Application configuration using Pydantic settings.

Configuration comes from environment variables with sensible defaults.
A storage backend is enabled simply by setting its credentials.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
