"""Route registry and the gateway's built-in handler groups."""

from health_gateway.api.routes.registry import HandlerGroup, RouteMount, RouteRegistry

__all__ = ["HandlerGroup", "RouteMount", "RouteRegistry"]
