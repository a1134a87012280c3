"""Body parsing step.

Reads the request body once, enforcing a hard size cap, and decodes JSON
and URL-encoded form bodies onto the request context. Route handlers still
receive the raw bytes: the dispatcher replays them.

A declared ``Content-Length`` above the cap is rejected without reading
anything; chunked bodies are rejected as soon as the streamed size crosses
it. GET, DELETE and the other usually bodyless methods are read too when
they announce a body.
"""

from urllib.parse import parse_qs

import orjson
from starlette.requests import ClientDisconnect

from health_gateway.api.constants import FORM_CONTENT_TYPES, JSON_CONTENT_TYPES
from health_gateway.api.middleware.error_handler import Failure
from health_gateway.api.middleware.pipeline import (
    CONTINUE,
    Continue,
    Fail,
    Outcome,
    PipelineStep,
)
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.exceptions import PayloadTooLargeError, ValidationError
from health_gateway.core.types import FormData, JsonValue, ParsedBody

BODYLESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "DELETE", "TRACE"})


class BodyParsingStep(PipelineStep):
    """Reads and decodes request bodies up to ``max_body_bytes``.

    Args:
        max_body_bytes: Largest accepted body, in bytes.
    """

    name = "body_parsing"

    def __init__(self, max_body_bytes: int) -> None:
        self.max_body_bytes = max_body_bytes

    async def process(self, context: RequestContext) -> Outcome:
        """Read, cap and decode the body."""
        if context.method in BODYLESS_METHODS and not self._announces_body(context):
            return CONTINUE

        try:
            self._check_declared_length(context)
            body = await self._read_body(context)
            parsed = self._decode(context.content_type, body)
        except ValidationError as exc:
            return Fail(Failure.from_exception(exc))

        return Continue(context.with_body(body, parsed))

    @staticmethod
    def _announces_body(context: RequestContext) -> bool:
        """Whether the request declares a body, sized or chunked."""
        return (
            "content-length" in context.headers
            or "transfer-encoding" in context.headers
        )

    @staticmethod
    def _declared_length(context: RequestContext) -> int | None:
        raw = context.headers.get("content-length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def _check_declared_length(self, context: RequestContext) -> None:
        declared = self._declared_length(context)
        if declared is not None and declared > self.max_body_bytes:
            raise PayloadTooLargeError(
                self.max_body_bytes, context={"content_length": declared}
            )

    async def _read_body(self, context: RequestContext) -> bytes:
        """Drain the receive channel, failing once the cap is crossed.

        Raises:
            PayloadTooLargeError: If more than ``max_body_bytes`` arrive.
            ClientDisconnect: If the client goes away mid-body.
        """
        receive = context.receive
        if receive is None:
            return b""

        chunks: list[bytes] = []
        size = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.max_body_bytes:
                raise PayloadTooLargeError(self.max_body_bytes)
            chunks.append(chunk)
            if not message.get("more_body", False):
                return b"".join(chunks)

    def _decode(self, content_type: str, body: bytes) -> ParsedBody:
        if not body:
            return None
        if content_type in JSON_CONTENT_TYPES or content_type.endswith("+json"):
            return self._decode_json(body)
        if content_type in FORM_CONTENT_TYPES:
            return self._decode_form(body)
        return None

    @staticmethod
    def _decode_json(body: bytes) -> JsonValue:
        """Decode a JSON body whose top level is an object or an array.

        Raises:
            ValidationError: If the body is not valid JSON of that shape.
        """
        try:
            value = orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise ValidationError("Malformed JSON body", cause=exc) from exc
        if not isinstance(value, dict | list):
            raise ValidationError("JSON body must be an object or an array")
        return value

    @staticmethod
    def _decode_form(body: bytes) -> FormData:
        """Decode a URL-encoded form; repeated keys become lists.

        Raises:
            ValidationError: If the body is not valid UTF-8.
        """
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError("Malformed form body", cause=exc) from exc
        return {
            key: values[0] if len(values) == 1 else values
            for key, values in parse_qs(text, keep_blank_values=True).items()
        }
