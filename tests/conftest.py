"""Root conftest.py for the gateway test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator
from typing import Any

import pytest
from loguru import logger

from health_gateway.core.logging import _state
from tests.fakes import FakeStore


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture
def fake_store() -> FakeStore:
    """Provide a reachable fake store handle."""
    return FakeStore()


@pytest.fixture(autouse=True)
def logging_preconfigured() -> Generator[None]:
    """Keep setup_logging from replacing the test sinks.

    Tests exercising setup_logging itself reset the flag explicitly.
    """
    previous = _state.configured
    _state.configured = True
    yield
    _state.configured = previous


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Capture Loguru records emitted during the test, in order."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)

