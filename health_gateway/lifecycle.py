"""Process lifecycle: bind, listen, drain, stop.

The ``LifecycleManager`` owns the uvicorn server and the store handle for
the whole life of the process::

    STARTING -> LISTENING -> DRAINING -> STOPPED

- ``STARTING``: the application is assembled and the store handle exists;
  the listener is being bound.
- ``LISTENING``: the listener accepts connections. Only a termination
  signal (or a server that stops on its own) leaves this state.
- ``DRAINING``: listening sockets are closed first, in-flight requests get
  a bounded time to finish, then the store handle is closed.
- ``STOPPED``: ``run()`` returns the process exit code.

Signals reach the manager through a ``SignalSource`` so that tests can
trigger shutdown without sending real OS signals. uvicorn's own signal
handling is disabled; the manager is the only component reacting to
SIGINT/SIGTERM.
"""

import asyncio
import math
import signal
from collections.abc import Callable, Generator
from contextlib import contextmanager
from enum import Enum
from typing import Protocol

import uvicorn
from fastapi import FastAPI
from loguru import logger

from health_gateway.core.config import Settings
from health_gateway.core.exceptions import ShutdownError
from health_gateway.core.logging import UVICORN_LOG_CONFIG
from health_gateway.infrastructure.database import StoreHandle

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)
STARTUP_POLL_INTERVAL_SECONDS = 0.05

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class LifecycleState(Enum):
    """States of the gateway process."""

    STARTING = "STARTING"
    LISTENING = "LISTENING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"


class SignalSource(Protocol):
    """Delivers termination signals to a callback."""

    def install(self, callback: Callable[[signal.Signals], None]) -> None:
        """Start delivering termination signals to ``callback``."""
        ...

    def remove(self) -> None:
        """Stop delivering signals."""
        ...


class LoopSignalSource:
    """Signal source backed by the running event loop's signal handlers."""

    def __init__(self, signals: tuple[signal.Signals, ...] = TERMINATION_SIGNALS) -> None:
        self.signals = signals
        self._loop: asyncio.AbstractEventLoop | None = None

    def install(self, callback: Callable[[signal.Signals], None]) -> None:
        """Register ``callback`` for every handled signal."""
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            self._loop.add_signal_handler(sig, callback, sig)

    def remove(self) -> None:
        """Restore the default handlers."""
        if self._loop is None:
            return
        for sig in self.signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None


class ListenerServer(Protocol):
    """The parts of the uvicorn server the manager drives."""

    started: bool
    should_exit: bool
    force_exit: bool

    async def serve(self) -> None:
        """Bind the listener and serve until told to exit."""
        ...

    def stop_accepting(self) -> None:
        """Close the listening sockets; open connections are left alone."""
        ...

    def bound_port(self) -> int:
        """Port the listener is bound to."""
        ...


class GatewayServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle manager."""

    @contextmanager
    def capture_signals(self) -> Generator[None]:
        """Do nothing; signals are handled by ``LifecycleManager``."""
        yield

    def stop_accepting(self) -> None:
        """Close the listening sockets."""
        for server in getattr(self, "servers", []):
            server.close()

    def bound_port(self) -> int:
        """Port actually bound (differs from the configured one for port 0)."""
        for server in getattr(self, "servers", []):
            for sock in server.sockets:
                return sock.getsockname()[1]
        return self.config.port


def build_server(app: FastAPI, settings: Settings) -> GatewayServer:
    """Build the uvicorn server for the gateway application."""
    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=UVICORN_LOG_CONFIG,
        access_log=False,
        timeout_graceful_shutdown=math.ceil(settings.lifecycle_config.shutdown_timeout_seconds),
        lifespan="on",
    )
    return GatewayServer(config)


class LifecycleManager:
    """Runs the gateway from listener bind to process exit.

    Args:
        app: The assembled application.
        store: The process-wide store handle, closed during shutdown.
        settings: Application settings.
        signal_source: Source of termination signals. Defaults to the event
            loop's SIGINT/SIGTERM handlers.
        server_factory: Builds the listener server; defaults to uvicorn.
    """

    def __init__(
        self,
        app: FastAPI,
        store: StoreHandle,
        settings: Settings,
        *,
        signal_source: SignalSource | None = None,
        server_factory: Callable[[FastAPI, Settings], ListenerServer] = build_server,
    ) -> None:
        self.store = store
        self.settings = settings
        self.signal_source = signal_source or LoopSignalSource()
        self.server = server_factory(app, settings)
        self.state = LifecycleState.STARTING
        self._serve_task: asyncio.Task[None] | None = None
        self._shutdown_task: asyncio.Task[int] | None = None
        self._startup_failed = False

    @property
    def shutdown_timeout(self) -> float:
        """Upper bound for draining the listener and for closing the store."""
        return self.settings.lifecycle_config.shutdown_timeout_seconds

    async def run(self) -> int:
        """Serve until shutdown and return the process exit code."""
        self.signal_source.install(self._on_signal)
        try:
            self._serve_task = asyncio.create_task(self._serve())
            await self._wait_until_listening(self._serve_task)

            if self.server.started and self.state is LifecycleState.STARTING:
                self.state = LifecycleState.LISTENING
                logger.info(
                    "Listening on port {} ({} environment)",
                    self.server.bound_port(),
                    self.settings.environment,
                    host=self.settings.api_host,
                )
            elif not self.server.started:
                self._startup_failed = True
                logger.error("Listener failed to start")

            await asyncio.wait([self._serve_task])
            exit_code = await self.shutdown()
        finally:
            self.signal_source.remove()

        return EXIT_FAILURE if self._startup_failed else exit_code

    def request_shutdown(self) -> asyncio.Task[int]:
        """Start the shutdown sequence unless it is already running."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown_sequence())
        return self._shutdown_task

    async def shutdown(self) -> int:
        """Run the shutdown sequence once and return its exit code.

        Concurrent and repeated calls all await the same sequence.
        """
        return await asyncio.shield(self.request_shutdown())

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_task is not None:
            logger.warning("Received {} while already shutting down", sig.name)
            return
        logger.info("Received {}, shutting down", sig.name)
        self.request_shutdown()

    async def _serve(self) -> None:
        try:
            await self.server.serve()
        except SystemExit as exc:
            # uvicorn exits the process when it cannot bind
            self._startup_failed = True
            logger.error("Listener exited during startup with code {}", exc.code)

    async def _wait_until_listening(self, serve_task: asyncio.Task[None]) -> None:
        while not self.server.started and not serve_task.done():
            await asyncio.wait([serve_task], timeout=STARTUP_POLL_INTERVAL_SECONDS)

    async def _shutdown_sequence(self) -> int:
        self.state = LifecycleState.DRAINING
        logger.info("Shutdown started", timeout_seconds=self.shutdown_timeout)

        self.server.stop_accepting()
        self.server.should_exit = True
        await self._drain_listener()

        exit_code = await self._close_store()

        self.state = LifecycleState.STOPPED
        logger.info("Shutdown complete", exit_code=exit_code)
        return exit_code

    async def _drain_listener(self) -> None:
        """Wait for the server to finish in-flight requests, within the bound."""
        serve_task = self._serve_task
        if serve_task is None or serve_task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(serve_task), self.shutdown_timeout)
        except TimeoutError:
            logger.warning(
                "Listener did not drain within {}s, closing open connections",
                self.shutdown_timeout,
            )
            self.server.force_exit = True
            serve_task.cancel()
            await asyncio.wait([serve_task])

    async def _close_store(self) -> int:
        """Close the store handle within the bound; failures are logged, not raised."""
        try:
            async with asyncio.timeout(self.shutdown_timeout):
                await self.store.close()
        except TimeoutError as exc:
            error = ShutdownError(
                f"Store handle did not close within {self.shutdown_timeout}s", cause=exc
            )
        except Exception as exc:
            error = ShutdownError("Store handle failed to close", cause=exc)
        else:
            logger.info("Store handle closed")
            return EXIT_SUCCESS

        logger.opt(exception=error).error(
            "Shutdown failure: {}", error.message, error_code=error.error_code
        )
        return EXIT_FAILURE
