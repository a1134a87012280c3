"""Debug handler group, mounted under ``/api/debug``.

Lets an operator see what the pipeline made of a request and whether the
store is reachable, without going through a domain handler.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from health_gateway.api.middleware.request_context import (
    RequestContext,
    get_request_context,
)
from health_gateway.core.error_context import sanitize_headers, sanitize_value
from health_gateway.infrastructure.database import StoreHandle


def build_router(store: StoreHandle) -> APIRouter:
    """Build the debug handler group around the shared store handle."""
    router = APIRouter()

    @router.api_route("/context", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def request_context(
        context: Annotated[RequestContext, Depends(get_request_context)],
    ) -> dict[str, Any]:
        """Echo the request context built by the pipeline, sanitized."""
        return {
            **context.describe(),
            "headers": sanitize_headers(context.headers.items()),
            "body": sanitize_value(context.parsed_body),
        }

    @router.get("/store")
    async def store_status() -> dict[str, Any]:
        """Report whether the store answers a trivial query."""
        reachable, error = await store.ping()
        return {"reachable": reachable, "error": error}

    return router
