"""Shared fixtures for the end-to-end test server tests."""

import pytest
from fastapi.testclient import TestClient

from ngsdk_e2e.core.config import Settings, get_settings
from ngsdk_e2e.main import create_app
from ngsdk_e2e.provisioning import reset_registry

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(host="127.0.0.1", port=3838, public_host="localhost", log_level="WARNING")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def isolated_registry():
    yield
    reset_registry()


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app) -> TestClient:
    """Unhandled errors come back as 500 responses instead of being raised."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def customer_models() -> dict:
    return {
        "Customer": {
            "properties": {"name": {"type": "string", "required": True}, "age": "number"},
            "options": {"relations": {"orders": {"type": "hasMany", "model": "Order"}}},
        },
        "Order": {"properties": {"total": "number"}},
    }
