"""Access logging step with performance monitoring.

First step of the pipeline: the request is logged before the body is read
or any header is attached, so that a request rejected further down (too
large, malformed) still leaves a trace.

Features:
- **Structured logging**: method, URL, path, sanitized headers and query
- **Performance tracking**: request duration and slow request detection
- **Client identification**: IP extraction with proxy header support
- **Body logging**: the sanitized parsed body, when present and non-empty
- **Exclusion patterns**: configurable path exclusion (e.g., health checks)
"""

from loguru import logger
from starlette.datastructures import MutableHeaders

from health_gateway.api.middleware.pipeline import CONTINUE, Outcome, PipelineStep
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.config import LogConfig
from health_gateway.core.error_context import sanitize_headers, sanitize_value

MAX_USER_AGENT_LENGTH = 200
SERVER_ERROR_STATUS = 500


class AccessLoggingStep(PipelineStep):
    """Logs every request on arrival and on completion.

    Never rejects a request.

    Args:
        log_config: Logging configuration.
        trust_proxy_headers: Read the client IP from X-Forwarded-For/X-Real-IP.
    """

    name = "access_logging"

    def __init__(self, log_config: LogConfig, *, trust_proxy_headers: bool = False) -> None:
        self.log_config = log_config
        self.excluded_paths = set(log_config.excluded_paths)
        self.trust_proxy_headers = trust_proxy_headers

    def _get_client_ip(self, context: RequestContext) -> str:
        """Extract real client IP considering proxy headers.

        Args:
            context: The incoming request.

        Returns:
            str: The client IP address.
        """
        if self.trust_proxy_headers:
            forwarded_for = context.headers.get("x-forwarded-for")
            if forwarded_for:
                # Take the first IP (original client)
                return forwarded_for.split(",")[0].strip()

            real_ip = context.headers.get("x-real-ip")
            if real_ip:
                return real_ip.strip()

        return context.client_host

    @staticmethod
    def _get_user_agent(context: RequestContext) -> str:
        """Extract the user agent, truncated to keep log lines bounded."""
        ua = context.headers.get("user-agent", "")
        return ua[:MAX_USER_AGENT_LENGTH] if ua else "unknown"

    def _is_excluded(self, context: RequestContext) -> bool:
        return context.path in self.excluded_paths

    async def process(self, context: RequestContext) -> Outcome:
        """Log the request as it arrives."""
        if self._is_excluded(context):
            return CONTINUE

        logger.info(
            "Request received",
            url=str(context.url),
            client_host=self._get_client_ip(context),
            user_agent=self._get_user_agent(context),
            headers=sanitize_headers(context.headers.items()),
            query_params=dict(context.query_params) if context.query_params else None,
        )
        return CONTINUE

    def on_response(
        self,
        context: RequestContext,
        status_code: int,
        headers: MutableHeaders,
    ) -> None:
        """Log completion with status, duration and the parsed body."""
        if self._is_excluded(context):
            return

        duration_ms = round(context.elapsed_ms, 2)
        body = None
        if self.log_config.log_request_body and context.has_body:
            body = sanitize_value(context.parsed_body)

        log = logger.warning if status_code >= SERVER_ERROR_STATUS else logger.info
        log(
            "Request completed",
            status_code=status_code,
            duration_ms=duration_ms,
            response_size=int(headers.get("content-length", 0)),
            body=body,
        )

        if duration_ms > self.log_config.slow_request_threshold_ms:
            logger.warning(
                "Slow request detected",
                duration_ms=duration_ms,
                threshold_ms=self.log_config.slow_request_threshold_ms,
            )
