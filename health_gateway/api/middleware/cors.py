"""Cross-origin policy step.

Attaches the same permissive CORS header set to every response, error
responses included, and answers ``OPTIONS`` preflights directly with an
empty 204.
"""

from starlette.datastructures import MutableHeaders
from starlette.responses import Response

from health_gateway.api.middleware.pipeline import CONTINUE, Outcome, PipelineStep, Respond
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.config import HttpConfig


class CorsStep(PipelineStep):
    """Adds CORS headers and short-circuits preflight requests.

    Args:
        http_config: Pipeline configuration holding the CORS values.
    """

    name = "cors"

    def __init__(self, http_config: HttpConfig) -> None:
        self.headers: dict[str, str] = {
            "Access-Control-Allow-Origin": http_config.cors_allow_origin,
            "Access-Control-Allow-Methods": ",".join(http_config.cors_allow_methods),
            "Access-Control-Allow-Headers": ",".join(http_config.cors_allow_headers),
            "Access-Control-Max-Age": str(http_config.cors_max_age),
        }
        if http_config.cors_expose_headers:
            self.headers["Access-Control-Expose-Headers"] = ",".join(
                http_config.cors_expose_headers
            )
        if http_config.cors_allow_credentials:
            self.headers["Access-Control-Allow-Credentials"] = "true"

    async def process(self, context: RequestContext) -> Outcome:
        """Answer preflight requests; let everything else through."""
        if context.method == "OPTIONS":
            return Respond(Response(status_code=204))
        return CONTINUE

    def on_response(
        self,
        context: RequestContext,
        status_code: int,
        headers: MutableHeaders,
    ) -> None:
        """Attach the CORS headers."""
        _ = (context, status_code)
        headers.update(self.headers)
