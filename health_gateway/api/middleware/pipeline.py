"""Ordered request pipeline and its dispatcher.

Every HTTP request entering the gateway is run through an explicit list of
steps before it may reach a route handler. Each step receives the current
``RequestContext`` and answers with an ``Outcome``:

- ``Continue``: pass control to the next step, optionally with an enriched
  context;
- ``Respond``: stop here and send this response;
- ``Fail``: stop here and let the error boundary answer.

When all steps continue, the wrapped application (router + route handlers)
runs. Any exception it lets escape, or a timeout, becomes a ``Fail`` as
well. A client that disconnects before its response starts gets no
response and is not treated as a failure. The order of the steps is fixed
when the middleware is built.

Every response leaving the dispatcher, whatever produced it, passes through
each step's ``on_response`` hook, which is where CORS and security headers
are attached and where the access log records completion.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger
from starlette.datastructures import MutableHeaders
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from health_gateway.api.constants import (
    CORRELATION_ID_HEADER,
    REQUEST_CONTEXT_STATE_KEY,
)
from health_gateway.api.middleware.error_handler import ErrorBoundary, Failure
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.exceptions import GatewayTimeoutError


@dataclass(frozen=True, slots=True)
class Continue:
    """Pass control to the next step."""

    context: RequestContext | None = None


@dataclass(frozen=True, slots=True)
class Respond:
    """Short-circuit the pipeline with a response."""

    response: Response


@dataclass(frozen=True, slots=True)
class Fail:
    """Skip the remaining steps and hand the failure to the error boundary."""

    failure: Failure


type Outcome = Continue | Respond | Fail

CONTINUE = Continue()


class PipelineStep:
    """Base class for pipeline steps.

    Subclasses override ``process`` to inspect or enrich the request and
    ``on_response`` to contribute response headers. Both default to no-ops.
    """

    name: str = "step"

    async def process(self, context: RequestContext) -> Outcome:
        """Inspect the request before it reaches a route handler."""
        _ = context
        return CONTINUE

    def on_response(
        self,
        context: RequestContext,
        status_code: int,
        headers: MutableHeaders,
    ) -> None:
        """Observe or decorate the response about to be sent."""
        _ = (context, status_code, headers)

    def __repr__(self) -> str:
        """Return the step name."""
        return f"<{type(self).__name__} {self.name!r}>"


class PipelineMiddleware:
    """ASGI middleware running the pipeline steps in order.

    Args:
        app: The ASGI application to protect (router and route handlers).
        steps: The steps, front to back.
        boundary: Error boundary building the response of every failure.
        request_timeout: Seconds the application has to start its response;
            None disables the timeout.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        steps: Sequence[PipelineStep],
        boundary: ErrorBoundary,
        request_timeout: float | None = None,
    ) -> None:
        self.app = app
        self.steps: tuple[PipelineStep, ...] = tuple(steps)
        self.boundary = boundary
        self.request_timeout = request_timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Dispatch one ASGI connection."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        context = RequestContext.from_scope(scope, receive)

        # Every log line emitted while handling the request carries these
        with logger.contextualize(
            correlation_id=context.correlation_id,
            method=context.method,
            path=context.path,
        ):
            await self._dispatch(context, scope, send)

    async def _dispatch(self, context: RequestContext, scope: Scope, send: Send) -> None:
        started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
                self._decorate(context, message)
            await send(message)

        try:
            context, outcome = await self._run_steps(context)
        except ClientDisconnect:
            logger.info("Client disconnected before the request was read")
            return
        receive = self._replay_receive(context)

        if isinstance(outcome, Continue):
            scope.setdefault("state", {})[REQUEST_CONTEXT_STATE_KEY] = context
            try:
                await self._call_app(scope, receive, send_wrapper)
            except ClientDisconnect:
                if started:
                    raise
                logger.info("Client disconnected before the response started")
                return
            except Exception as exc:
                if started:
                    raise
                outcome = Fail(Failure.from_exception(exc))
            else:
                return

        if isinstance(outcome, Fail):
            response = self.boundary.build_response(context, outcome.failure)
        else:
            response = outcome.response
        await response(scope, receive, send_wrapper)

    async def _call_app(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the application, bounded until it starts its response.

        Raises:
            GatewayTimeoutError: If the response has not started in time.
        """
        deadline = asyncio.timeout(self.request_timeout)

        async def send_started(message: Message) -> None:
            if message["type"] == "http.response.start":
                deadline.reschedule(None)
            await send(message)

        try:
            async with deadline:
                await self.app(scope, receive, send_started)
        except TimeoutError as exc:
            if deadline.expired():
                raise GatewayTimeoutError(self.request_timeout or 0.0) from exc
            raise

    async def _run_steps(
        self, context: RequestContext
    ) -> tuple[RequestContext, Outcome]:
        """Run the steps in order until one of them stops the request."""
        for step in self.steps:
            try:
                outcome = await step.process(context)
            except ClientDisconnect:
                raise
            except Exception as exc:
                logger.opt(exception=exc).error(
                    "Pipeline step {} raised", step.name, step=step.name
                )
                return context, Fail(Failure.from_exception(exc))

            if isinstance(outcome, Continue):
                if outcome.context is not None:
                    context = outcome.context
                continue
            return context, outcome
        return context, CONTINUE

    def _decorate(self, context: RequestContext, message: Message) -> None:
        headers = MutableHeaders(scope=message)
        headers[CORRELATION_ID_HEADER] = context.correlation_id
        for step in self.steps:
            step.on_response(context, message["status"], headers)

    @staticmethod
    def _replay_receive(context: RequestContext) -> Receive:
        """Receive channel handing the already-read body to the application."""
        original = context.receive
        if original is None:
            msg = "Request context has no receive channel"
            raise RuntimeError(msg)
        if context.body is None:
            return original

        body_sent = False

        async def receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": context.body, "more_body": False}
            return await original()

        return receive

