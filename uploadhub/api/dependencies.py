"""
FastAPI dependency injection.

Dependencies provide configuration and the storage registry to route
handlers. Routes never build their own StorageManager, so tests can swap
in a registry backed by fake providers through `app.dependency_overrides`.
"""

import logging
from typing import Annotated

from fastapi import Depends

from ..config.settings import Settings, get_settings
from ..core.storage.manager import StorageManager
from ..infrastructure.storage.factory import create_storage_manager

logger = logging.getLogger(__name__)


def get_storage_manager(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageManager:
    """
    Provide a StorageManager for the current request.

    A fresh registry is built per request from settings.
    """
    manager = create_storage_manager(settings)
    logger.debug(
        "Created request-scoped storage manager",
        extra={"providers": manager.get_available_providers()},
    )
    return manager


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_settings)]
StorageManagerDep = Annotated[StorageManager, Depends(get_storage_manager)]
