"""Test doubles shared by unit and integration tests."""

import asyncio
import signal
from collections.abc import Callable

from starlette.types import Message, Scope

from health_gateway.api.middleware.request_context import RequestContext


class FakeStore:
    """In-memory stand-in for the store handle.

    Records every close call; optionally fails or stalls while closing.
    """

    def __init__(
        self,
        *,
        reachable: bool = True,
        close_error: Exception | None = None,
        close_delay: float = 0.0,
        events: list[str] | None = None,
    ) -> None:
        self.reachable = reachable
        self.close_error = close_error
        self.close_delay = close_delay
        self.events = events if events is not None else []
        self.close_calls = 0
        self.closed = False

    async def ping(self) -> tuple[bool, str | None]:
        if self.reachable:
            return True, None
        return False, "connection refused"

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("store_close")
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class FakeServer:
    """Listener stand-in driven by ``should_exit`` like uvicorn's server."""

    def __init__(
        self,
        *,
        fail_startup: bool = False,
        hang_on_exit: bool = False,
        events: list[str] | None = None,
    ) -> None:
        self.fail_startup = fail_startup
        self.hang_on_exit = hang_on_exit
        self.events = events if events is not None else []
        self.started = False
        self.should_exit = False
        self.force_exit = False
        self.accepting = False

    async def serve(self) -> None:
        if self.fail_startup:
            self.events.append("startup_failed")
            return
        self.accepting = True
        self.started = True
        while not self.should_exit:
            await asyncio.sleep(0.01)
        if self.hang_on_exit:
            await asyncio.sleep(3600)
        self.events.append("served")

    def stop_accepting(self) -> None:
        self.accepting = False
        self.events.append("stop_accepting")

    def bound_port(self) -> int:
        return 3000


class FakeSignalSource:
    """Signal source fired by hand."""

    def __init__(self) -> None:
        self.callback: Callable[[signal.Signals], None] | None = None
        self.removed = False

    def install(self, callback: Callable[[signal.Signals], None]) -> None:
        self.callback = callback

    def remove(self) -> None:
        self.removed = True

    def fire(self, sig: signal.Signals = signal.SIGTERM) -> None:
        assert self.callback is not None, "signal source not installed"
        self.callback(sig)


def make_scope(
    method: str = "GET",
    path: str = "/api/glucose/readings",
    *,
    headers: list[tuple[str, str]] | None = None,
    query_string: bytes = b"",
    client: tuple[str, int] | None = ("10.0.0.7", 51234),
) -> Scope:
    """Build an HTTP ASGI scope."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query_string,
        "headers": [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in headers or []
        ],
        "client": client,
    }


class FakeReceive:
    """Receive channel streaming the given chunks as one body, then disconnecting."""

    def __init__(self, *chunks: bytes) -> None:
        parts = chunks or (b"",)
        self.messages: list[Message] = [
            {"type": "http.request", "body": chunk, "more_body": index < len(parts) - 1}
            for index, chunk in enumerate(parts)
        ]
        self.calls = 0

    async def __call__(self) -> Message:
        self.calls += 1
        if self.messages:
            return self.messages.pop(0)
        return {"type": "http.disconnect"}


class SentMessages(list[Message]):
    """Send channel recording the ASGI messages it receives."""

    async def __call__(self, message: Message) -> None:
        self.append(message)

    @property
    def status(self) -> int:
        return self[0]["status"]

    @property
    def headers(self) -> dict[str, str]:
        return {
            name.decode("latin-1").lower(): value.decode("latin-1")
            for name, value in self[0]["headers"]
        }

    @property
    def body(self) -> bytes:
        return b"".join(
            message.get("body", b"")
            for message in self
            if message["type"] == "http.response.body"
        )


type ContextFactory = Callable[..., RequestContext]
