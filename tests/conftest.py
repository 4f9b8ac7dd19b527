"""
Shared fixtures for the test suite.

Storage settings come from the environment, so every test starts with the
storage-related variables removed and builds Settings explicitly.
"""

import pytest

from uploadhub.config.settings import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_storage_env(monkeypatch):
    """Remove any real credentials from the environment for the test run."""
    for field in Settings.model_fields:
        monkeypatch.delenv(field.upper(), raising=False)
        monkeypatch.delenv(field, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Build Settings from keyword arguments only, ignoring any .env file."""
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make
