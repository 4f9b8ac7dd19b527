"""
uploadhub - upload a file once, store it in any of several backends.

This package contains:
- core: Framework-agnostic upload models, errors and the provider registry
- infrastructure: Protocol clients for Telegram, S3, MinIO and Supabase
- api: FastAPI routes for storage introspection
- config: Application configuration
"""

__version__ = "0.1.0"
