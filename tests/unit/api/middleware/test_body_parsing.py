"""Unit tests for BodyParsingStep."""

import orjson
import pytest

from health_gateway.api.middleware.body_parsing import BodyParsingStep
from health_gateway.api.middleware.error_handler import FailureKind
from health_gateway.api.middleware.pipeline import Continue, Fail
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.exceptions import PayloadTooLargeError
from tests.fakes import ContextFactory, FakeReceive, make_scope

JSON = [("Content-Type", "application/json")]
FORM = [("Content-Type", "application/x-www-form-urlencoded")]


def _context(*chunks: bytes, headers: list[tuple[str, str]], method: str = "POST") -> RequestContext:
    return RequestContext.from_scope(make_scope(method, headers=headers), FakeReceive(*chunks))


@pytest.mark.unit
class TestBodyDecoding:
    """Decoding of supported content types."""

    async def test_json_object(self) -> None:
        """Test a JSON object is decoded onto the context."""
        body = orjson.dumps({"value": 5.4, "unit": "mmol/L"})
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(_context(body, headers=JSON))

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.body == body
        assert outcome.context.parsed_body == {"value": 5.4, "unit": "mmol/L"}

    async def test_json_array_streamed(self) -> None:
        """Test a JSON array sent in several chunks is reassembled."""
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(_context(b'[{"carbs": ', b"45}]", headers=JSON))

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.parsed_body == [{"carbs": 45}]

    async def test_vendor_json_type(self) -> None:
        """Test +json media types are decoded as JSON."""
        step = BodyParsingStep(max_body_bytes=1024)
        headers = [("Content-Type", "application/merge-patch+json")]

        outcome = await step.process(_context(b'{"notes": null}', headers=headers, method="PATCH"))

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.parsed_body == {"notes": None}

    async def test_form(self) -> None:
        """Test form bodies decode single values to str and repeats to lists."""
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(
            _context(b"activity=run&minutes=30&tag=am&tag=outdoor", headers=FORM)
        )

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.parsed_body == {
            "activity": "run",
            "minutes": "30",
            "tag": ["am", "outdoor"],
        }

    async def test_other_content_type_keeps_raw_body(self) -> None:
        """Test unsupported types are read but not decoded."""
        step = BodyParsingStep(max_body_bytes=1024)
        headers = [("Content-Type", "text/csv")]

        outcome = await step.process(_context(b"time,value\n08:00,5.4", headers=headers))

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.body == b"time,value\n08:00,5.4"
        assert outcome.context.parsed_body is None

    async def test_empty_body(self) -> None:
        """Test an empty body parses to None."""
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(_context(b"", headers=JSON))

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.parsed_body is None

    async def test_bodyless_get_is_not_read(self, make_context: ContextFactory) -> None:
        """Test GET requests without Content-Length are passed through untouched."""
        context = make_context(method="GET")
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(context)

        assert isinstance(outcome, Continue)
        assert outcome.context is None
        assert isinstance(context.receive, FakeReceive)
        assert context.receive.calls == 0

    async def test_chunked_delete_is_read(self) -> None:
        """Test a DELETE announcing a chunked body has it read and decoded."""
        step = BodyParsingStep(max_body_bytes=1024)
        context = _context(
            b'{"ids": ', b"[1, 2]}",
            headers=[*JSON, ("Transfer-Encoding", "chunked")],
            method="DELETE",
        )

        outcome = await step.process(context)

        assert isinstance(outcome, Continue)
        assert outcome.context is not None
        assert outcome.context.parsed_body == {"ids": [1, 2]}


@pytest.mark.unit
class TestBodyRejection:
    """Malformed and oversized bodies."""

    @pytest.mark.parametrize("body", [b'{"value": 5.4', b"not json", b'"just a string"', b"42"])
    async def test_malformed_json(self, body: bytes) -> None:
        """Test malformed JSON and scalar top levels fail with 400."""
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(_context(body, headers=JSON))

        assert isinstance(outcome, Fail)
        assert outcome.failure.kind is FailureKind.VALIDATION_OR_PARSE
        assert outcome.failure.status == 400

    async def test_invalid_utf8_form(self) -> None:
        """Test non-UTF-8 form bodies fail with 400."""
        step = BodyParsingStep(max_body_bytes=1024)

        outcome = await step.process(_context(b"name=\xff\xfe", headers=FORM))

        assert isinstance(outcome, Fail)
        assert outcome.failure.status == 400

    async def test_declared_length_over_cap(self) -> None:
        """Test a Content-Length above the cap fails with 413 before reading."""
        step = BodyParsingStep(max_body_bytes=100)
        context = _context(b"x" * 500, headers=[*JSON, ("Content-Length", "500")])

        outcome = await step.process(context)

        assert isinstance(outcome, Fail)
        assert outcome.failure.status == 413
        assert outcome.failure.message == "Request entity too large"
        assert isinstance(outcome.failure.exc, PayloadTooLargeError)
        assert isinstance(context.receive, FakeReceive)
        assert context.receive.calls == 0

    async def test_streamed_size_over_cap(self) -> None:
        """Test a chunked body crossing the cap fails with 413."""
        step = BodyParsingStep(max_body_bytes=100)
        context = _context(b"a" * 60, b"b" * 60, b"c" * 60, headers=JSON)

        outcome = await step.process(context)

        assert isinstance(outcome, Fail)
        assert outcome.failure.status == 413
        assert isinstance(context.receive, FakeReceive)
        assert context.receive.calls == 2

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    async def test_chunked_bodyless_method_over_cap(self, method: str) -> None:
        """Test chunked bodies on GET and DELETE are capped like any other."""
        step = BodyParsingStep(max_body_bytes=100)
        context = _context(
            b"a" * 60,
            b"b" * 60,
            headers=[("Transfer-Encoding", "chunked")],
            method=method,
        )

        outcome = await step.process(context)

        assert isinstance(outcome, Fail)
        assert outcome.failure.status == 413

    async def test_body_at_cap_is_accepted(self) -> None:
        """Test a body of exactly max_body_bytes passes."""
        step = BodyParsingStep(max_body_bytes=8)

        outcome = await step.process(_context(b'{"a": 1}', headers=JSON))

        assert isinstance(outcome, Continue)
