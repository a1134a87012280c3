"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator

import pytest
from pytest_mock import MockerFixture, MockType

from health_gateway.core.config import LogConfig, Settings, get_settings
from health_gateway.core.error_context import _get_sensitive_fields


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a real Settings object built from test environment variables.

    Returns:
        Settings: Settings with test defaults.
    """
    monkeypatch.setenv("APP_NAME", "TestGateway")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "3000")
    monkeypatch.setenv("LOG_CONFIG__LOG_FORMATTER_TYPE", "console")

    return Settings()


@pytest.fixture
def mock_get_settings(mocker: MockerFixture) -> MockType:
    """Mock get_settings in error_context with custom sensitive fields.

    Args:
        mocker: Pytest mocker fixture.

    Returns:
        MockType: Mock get_settings function.
    """
    mock_settings = mocker.Mock(spec=Settings)
    mock_log_config = mocker.Mock(spec=LogConfig)
    mock_log_config.sensitive_fields = ["glucose_note", "insulin_pen_serial"]
    mock_settings.log_config = mock_log_config

    mock_get_settings_fn = mocker.patch("health_gateway.core.error_context.get_settings")
    mock_get_settings_fn.return_value = mock_settings

    _get_sensitive_fields.cache_clear()

    return mock_get_settings_fn


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings and sensitive-field caches around each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Backup and restore environment variables to prevent test interference.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    # Cloud variables are kept; formatter detection tests set them explicitly
    env_prefixes = [
        "APP_",
        "API_",
        "PORT",
        "ENVIRONMENT",
        "NODE_ENV",
        "DEBUG",
        "LOG_CONFIG__",
        "HTTP_CONFIG__",
        "DATABASE_CONFIG__",
        "LIFECYCLE_CONFIG__",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)
