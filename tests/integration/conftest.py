"""Shared fixtures for integration tests.

The gateway is exercised in-process through httpx's ASGI transport, with a
fake store handle and a glucose handler group standing in for a real
domain module.
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from health_gateway.api.main import create_app
from health_gateway.core.config import HttpConfig, LogConfig, Settings
from tests.fakes import FakeStore
from tests.integration.glucose import (
    MAX_BODY_BYTES,
    REQUEST_TIMEOUT_SECONDS,
    GlucoseGroup,
)


@pytest.fixture
def integration_settings() -> Settings:
    """Settings independent of the host environment."""
    return Settings(
        app_name="Health Tracker Gateway",
        environment="test",
        debug=False,
        log_config=LogConfig(log_formatter_type="console"),
        http_config=HttpConfig(
            max_body_bytes=MAX_BODY_BYTES,
            request_timeout_seconds=REQUEST_TIMEOUT_SECONDS,
        ),
    )


@pytest.fixture
def glucose_group() -> GlucoseGroup:
    """The glucose handler group."""
    return GlucoseGroup()


@pytest.fixture
def app(
    integration_settings: Settings, fake_store: FakeStore, glucose_group: GlucoseGroup
) -> FastAPI:
    """Gateway application with the glucose group mounted."""
    return create_app(
        integration_settings,
        store=fake_store,  # type: ignore[arg-type]
        handler_groups=[("/api/glucose", glucose_group)],
    )


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client bound to the application."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as async_client:
        yield async_client
