"""Security headers step for adding common hardening headers to responses.

Content-Security-Policy and Cross-Origin-Embedder-Policy are never sent:
the Swagger UI served at the docs URL loads its assets from a CDN and
breaks under either.
"""

from starlette.datastructures import MutableHeaders

from health_gateway.api.middleware.pipeline import PipelineStep
from health_gateway.api.middleware.request_context import RequestContext
from health_gateway.core.constants import DEFAULT_HSTS_MAX_AGE

STATIC_SECURITY_HEADERS: dict[str, str] = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


class SecurityHeadersStep(PipelineStep):
    """Adds security headers to all responses.

    Besides the static set above, adds
    ``Strict-Transport-Security: max-age=15552000; includeSubDomains`` when
    HSTS is enabled.

    Args:
        hsts_enabled: Whether to include HSTS header (defaults to True).
        hsts_max_age: Max age for HSTS in seconds (defaults to 180 days).
        hsts_include_subdomains: Whether to include subdomains in HSTS.
        hsts_preload: Whether to include preload directive.
    """

    name = "security_headers"

    def __init__(
        self,
        *,
        hsts_enabled: bool = True,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
        hsts_include_subdomains: bool = True,
        hsts_preload: bool = False,
    ) -> None:
        self.hsts_enabled = hsts_enabled
        self.hsts_max_age = hsts_max_age
        self.hsts_include_subdomains = hsts_include_subdomains
        self.hsts_preload = hsts_preload

    def _build_hsts_header(self) -> str:
        """Build the Strict-Transport-Security header value.

        Returns:
            str: The HSTS header value string.
        """
        parts = [f"max-age={self.hsts_max_age}"]

        if self.hsts_include_subdomains:
            parts.append("includeSubDomains")

        if self.hsts_preload:
            parts.append("preload")

        return "; ".join(parts)

    def on_response(
        self,
        context: RequestContext,
        status_code: int,
        headers: MutableHeaders,
    ) -> None:
        """Add security headers to the response."""
        _ = (context, status_code)
        headers.update(STATIC_SECURITY_HEADERS)

        if self.hsts_enabled:
            headers["Strict-Transport-Security"] = self._build_hsts_header()
