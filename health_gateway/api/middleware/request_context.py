"""Per-request context threaded through the pipeline.

A ``RequestContext`` is built by the dispatcher from the ASGI scope when a
request enters the gateway. It is immutable: steps that learn something
about the request (the body parsing step, for one) return an enriched copy
through ``Continue(context=...)``. Once the pipeline has run, the final
context is exposed to route handlers as ``request.state.request_context``.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from fastapi import Request
from starlette.datastructures import URL, Headers, QueryParams
from starlette.types import Receive

from health_gateway.api.constants import (
    CORRELATION_ID_HEADER,
    REQUEST_CONTEXT_STATE_KEY,
)
from health_gateway.core.types import AsgiScope, ParsedBody


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Parsed representation of one inbound HTTP call.

    Attributes:
        method: Upper-case HTTP method.
        path: Request path, without query string.
        url: Full request URL.
        headers: Case-insensitive request headers.
        query_params: Decoded query string.
        client_host: Peer address, or "unknown".
        correlation_id: Echoed from ``X-Correlation-ID`` or generated.
        started_at: ``time.perf_counter()`` reading at arrival.
        body: Raw body bytes once read, None before.
        parsed_body: Decoded JSON or form body, None when absent.
        receive: ASGI receive channel the body is read from.
    """

    method: str
    path: str
    url: URL
    headers: Headers
    query_params: QueryParams
    client_host: str
    correlation_id: str
    started_at: float
    body: bytes | None = None
    parsed_body: ParsedBody = None
    receive: Receive | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_scope(cls, scope: AsgiScope, receive: Receive) -> "RequestContext":
        """Build the context of an HTTP request from its ASGI scope."""
        headers = Headers(scope=scope)
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=scope["path"],
            url=URL(scope=scope),
            headers=headers,
            query_params=QueryParams(scope.get("query_string", b"")),
            client_host=client[0] if client else "unknown",
            correlation_id=headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4()),
            started_at=time.perf_counter(),
            receive=receive,
        )

    @property
    def content_type(self) -> str:
        """Media type of the body, lower-cased and without parameters."""
        raw = self.headers.get("content-type", "")
        return raw.split(";", 1)[0].strip().lower()

    @property
    def has_body(self) -> bool:
        """Whether a non-empty body was parsed."""
        return self.parsed_body not in (None, {}, [], "")

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the request arrived."""
        return (time.perf_counter() - self.started_at) * 1000

    def with_body(self, body: bytes, parsed_body: ParsedBody) -> "RequestContext":
        """Return a copy carrying the read and decoded body."""
        return replace(self, body=body, parsed_body=parsed_body)

    def describe(self) -> dict[str, Any]:
        """Summary used by logs and the debug handler group."""
        return {
            "method": self.method,
            "path": self.path,
            "url": str(self.url),
            "query_params": dict(self.query_params),
            "correlation_id": self.correlation_id,
        }


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency returning the pipeline's context for this request.

    Raises:
        RuntimeError: If the request did not go through the pipeline.
    """
    context = getattr(request.state, REQUEST_CONTEXT_STATE_KEY, None)
    if context is None:
        msg = "Request context is missing; is PipelineMiddleware installed?"
        raise RuntimeError(msg)
    return context
