"""Error boundary: the single place failures become HTTP responses.

Failures reach the boundary three ways:

- a pipeline step or the dispatcher hands over a ``Failure`` value (oversized
  or malformed body, handler exception, request timeout);
- FastAPI raises one of its own exceptions inside the application
  (``HTTPException``, ``RequestValidationError``) or a handler raises a
  ``GatewayError``; the exception handlers registered here convert them;
- no route matches the path; the router's default app answers through the
  boundary.

Whatever the origin, the client receives the same ``ErrorRecord`` body and
the failure is logged, with sanitized context, before the response is sent.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException
from starlette.types import Receive, Scope, Send

from health_gateway.api.constants import (
    INTERNAL_ERROR_MESSAGE,
    NOT_FOUND_MESSAGE,
    REQUEST_CONTEXT_STATE_KEY,
)
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.api.schemas.errors import ErrorRecord
from health_gateway.api.utils.responses import ORJSONResponse
from health_gateway.core.error_context import sanitize_error_context, sanitize_value
from health_gateway.core.exceptions import GatewayError, ValidationError

MIN_ERROR_STATUS = 400
MAX_ERROR_STATUS = 599
SERVER_ERROR_STATUS = 500


class FailureKind(Enum):
    """Where a failure originated."""

    VALIDATION_OR_PARSE = "VALIDATION_OR_PARSE"
    """The request itself is unacceptable (oversized, malformed, invalid)."""

    NO_MATCH = "NO_MATCH"
    """No route matched the request path."""

    HANDLER_FAILURE = "HANDLER_FAILURE"
    """A route handler or pipeline step raised."""


def _carried_status(exc: BaseException) -> int | None:
    """HTTP error status carried by an exception, if any."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            if MIN_ERROR_STATUS <= value <= MAX_ERROR_STATUS:
                return value
    return None


def _carried_message(exc: BaseException) -> str | None:
    """Client-facing message carried by an exception, if any."""
    if isinstance(exc, GatewayError):
        return exc.message
    if isinstance(exc, HTTPException):
        return exc.detail if isinstance(exc.detail, str) else None
    return str(exc) or None


@dataclass(frozen=True, slots=True)
class Failure:
    """Typed failure travelling from the pipeline to the boundary.

    Attributes:
        kind: Origin of the failure.
        status_code: HTTP status to answer with; None means 500.
        message: Client-facing message; None means the generic message.
        exc: The exception behind the failure, kept for logging only.
    """

    kind: FailureKind
    status_code: int | None = None
    message: str | None = None
    exc: BaseException | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "Failure":
        """Build a failure from any exception.

        The status comes from a ``status_code`` or ``status`` attribute in
        the 400-599 range; the message from the exception itself.
        """
        kind = (
            FailureKind.VALIDATION_OR_PARSE
            if isinstance(exc, ValidationError | RequestValidationError)
            else FailureKind.HANDLER_FAILURE
        )
        return cls(
            kind=kind,
            status_code=_carried_status(exc),
            message=_carried_message(exc),
            exc=exc,
        )

    @classmethod
    def no_match(cls) -> "Failure":
        """Failure for a path no route matched."""
        return cls(
            kind=FailureKind.NO_MATCH,
            status_code=404,
            message=NOT_FOUND_MESSAGE,
        )

    @property
    def status(self) -> int:
        """Status the response is sent with."""
        return self.status_code or SERVER_ERROR_STATUS

    @property
    def client_message(self) -> str:
        """Message placed in the error record."""
        return self.message or INTERNAL_ERROR_MESSAGE


class ErrorBoundary:
    """Builds the normalized error response of every failure.

    Args:
        environment: Environment name echoed in every error record.
    """

    def __init__(self, environment: str) -> None:
        self.environment = environment

    def build_record(self, context: RequestContext, failure: Failure) -> ErrorRecord:
        """Build the error body for a failed request."""
        return ErrorRecord(
            message=failure.client_message,
            path=context.path,
            method=context.method,
            environment=self.environment,
        )

    def build_response(self, context: RequestContext, failure: Failure) -> Response:
        """Log the failure and build its response.

        Logging never raises out of this method: if it fails, the response
        is built anyway.
        """
        try:
            self._log_failure(context, failure)
        except Exception as log_exc:  # noqa: BLE001
            sys.stderr.write(f"Error boundary could not log failure: {log_exc!r}\n")

        return ORJSONResponse(
            status_code=failure.status,
            content=self.build_record(context, failure),
        )

    def response_for_request(self, request: Request, failure: Failure) -> Response:
        """Build the error response from inside the application."""
        context = getattr(request.state, REQUEST_CONTEXT_STATE_KEY, None)
        if context is None:
            context = RequestContext.from_scope(request.scope, request.receive)
        return self.build_response(context, failure)

    async def route_not_found(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI app answering requests no route matched."""
        request = Request(scope, receive)
        response = self.response_for_request(request, Failure.no_match())
        await response(scope, receive, send)

    def _log_failure(self, context: RequestContext, failure: Failure) -> None:
        log_context: dict[str, Any] = {
            "url": str(context.url),
            "failure_kind": failure.kind.value,
            "status_code": failure.status,
        }
        if context.has_body:
            log_context["body"] = sanitize_value(context.parsed_body)
        if failure.exc is not None:
            log_context.update(sanitize_error_context(failure.exc))

        if failure.status >= SERVER_ERROR_STATUS:
            logger.opt(exception=failure.exc).error(
                "Request failed: {}", failure.client_message, **log_context
            )
        else:
            logger.warning(
                "Request rejected: {}", failure.client_message, **log_context
            )


async def gateway_error_handler(request: Request, exc: Exception) -> Response:
    """Handle GatewayError exceptions raised by route handlers.

    Raises:
        TypeError: If exc is not a GatewayError instance.
    """
    if not isinstance(exc, GatewayError):
        raise TypeError(f"Expected GatewayError, got {type(exc).__name__}")
    return _boundary(request).response_for_request(request, Failure.from_exception(exc))


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException (405, explicit aborts from handlers).

    Raises:
        TypeError: If exc is not an HTTPException instance.
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")
    response = _boundary(request).response_for_request(
        request, Failure.from_exception(exc)
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    Field-level errors are logged; the client gets a one-line summary.

    Raises:
        TypeError: If exc is not a RequestValidationError instance.
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    field_errors: list[str] = []
    for error in exc.errors():
        location = ".".join(str(loc) for loc in error.get("loc", ()))
        field_errors.append(f"{location}: {error.get('msg', 'Invalid value')}")

    message = "Request validation failed"
    if field_errors:
        message = f"{message}: {'; '.join(field_errors)}"

    failure = Failure(
        kind=FailureKind.VALIDATION_OR_PARSE,
        status_code=422,
        message=message,
        exc=exc,
    )
    return _boundary(request).response_for_request(request, failure)


def _boundary(request: Request) -> ErrorBoundary:
    return request.app.state.error_boundary


def register_exception_handlers(app: FastAPI, boundary: ErrorBoundary) -> None:
    """Route FastAPI's failures and unmatched paths through the boundary.

    Args:
        app: The FastAPI application instance.
        boundary: The boundary building every error response.
    """
    app.state.error_boundary = boundary

    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.router.default = boundary.route_not_found

    logger.debug("Exception handlers registered")
