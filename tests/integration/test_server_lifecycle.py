"""Integration tests running the gateway on a real uvicorn listener."""

import asyncio

import pytest
from httpx import AsyncClient

from health_gateway.api.main import create_app
from health_gateway.core.config import LifecycleConfig, LogConfig, Settings
from health_gateway.lifecycle import EXIT_SUCCESS, LifecycleManager, LifecycleState
from tests.fakes import FakeSignalSource, FakeStore


@pytest.fixture
def server_settings() -> Settings:
    """Settings binding an ephemeral port on the loopback interface."""
    return Settings(
        environment="test",
        api_host="127.0.0.1",
        api_port=0,
        log_config=LogConfig(log_formatter_type="console"),
        lifecycle_config=LifecycleConfig(shutdown_timeout_seconds=2.0),
    )


@pytest.mark.integration
class TestServerLifecycle:
    """Bind, serve, drain and stop."""

    async def test_serve_then_stop_on_signal(self, server_settings: Settings) -> None:
        """Test a live listener answers, then shuts down cleanly on SIGTERM."""
        store = FakeStore()
        signals = FakeSignalSource()
        app = create_app(server_settings, store=store)  # type: ignore[arg-type]
        manager = LifecycleManager(
            app,
            store,  # type: ignore[arg-type]
            server_settings,
            signal_source=signals,
        )

        task = asyncio.create_task(manager.run())
        async with asyncio.timeout(5):
            while manager.state is not LifecycleState.LISTENING:
                await asyncio.sleep(0.02)

        port = manager.server.bound_port()
        async with AsyncClient(base_url=f"http://127.0.0.1:{port}") as client:
            health = await client.get("/health")
            missing = await client.get("/api/unknown")

        signals.fire()
        exit_code = await asyncio.wait_for(task, timeout=5)

        assert port != 0
        assert health.status_code == 200
        assert health.json()["environment"] == "test"
        assert missing.status_code == 404
        assert exit_code == EXIT_SUCCESS
        assert manager.state is LifecycleState.STOPPED
        assert store.close_calls == 1
