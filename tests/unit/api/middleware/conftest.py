"""Fixtures for pipeline unit tests."""

from typing import Any

import pytest

from health_gateway.api.middleware.request_context import RequestContext
from tests.fakes import ContextFactory, FakeReceive, SentMessages, make_scope


@pytest.fixture
def make_context() -> ContextFactory:
    """Factory for request contexts built from a scope and body chunks."""

    def _create(*chunks: bytes, **scope_kwargs: Any) -> RequestContext:
        return RequestContext.from_scope(make_scope(**scope_kwargs), FakeReceive(*chunks))

    return _create


@pytest.fixture
def sent() -> SentMessages:
    """Send channel recording messages."""
    return SentMessages()
