"""Unit tests for test server settings."""

import pytest

from ngsdk_e2e.core.config import Settings, get_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PORT", "NGSDK_E2E_PORT", "NGSDK_E2E_HOST", "NGSDK_E2E_PUBLIC_HOST", "NGSDK_E2E_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings(_env_file=None)

    assert settings.host == "127.0.0.1"
    assert settings.port == 3838
    assert settings.cors_allow_origins == ["*"]
    assert settings.user_hash_iterations == 4
    assert settings.base_url == "http://localhost:3838/"


def test_prefixed_environment_variables(clean_env):
    clean_env.setenv("NGSDK_E2E_PORT", "4000")
    clean_env.setenv("NGSDK_E2E_PUBLIC_HOST", "e2e.local")
    clean_env.setenv("NGSDK_E2E_LOG_JSON_OUTPUT", "true")

    settings = Settings(_env_file=None)

    assert settings.port == 4000
    assert settings.log_json_output is True
    assert settings.base_url == "http://e2e.local:4000/"


def test_plain_port_variable_is_a_fallback(clean_env):
    clean_env.setenv("PORT", "5000")
    assert Settings(_env_file=None).port == 5000

    clean_env.setenv("NGSDK_E2E_PORT", "6000")
    assert Settings(_env_file=None).port == 6000


def test_port_zero_is_allowed(clean_env):
    assert Settings(_env_file=None, port=0).port == 0


def test_get_settings_is_cached(clean_env):
    assert get_settings() is get_settings()
