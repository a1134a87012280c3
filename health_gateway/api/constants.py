"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Request context key under ``request.state``
REQUEST_CONTEXT_STATE_KEY = "request_context"

# Content types the body parsing step decodes
JSON_CONTENT_TYPES = {"application/json", "text/json"}
FORM_CONTENT_TYPES = {"application/x-www-form-urlencoded"}

# Route prefixes, in mount priority order
DEBUG_PREFIX = "/api/debug"
DOMAIN_PREFIXES = (
    "/api/users",
    "/api/glucose",
    "/api/activities",
    "/api/insulin",
    "/api/food",
)

# Fallback messages of the error boundary
NOT_FOUND_MESSAGE = "Resource not found"
INTERNAL_ERROR_MESSAGE = "Internal server error"

# Upper bound for the startup connectivity check of the store
STARTUP_PING_TIMEOUT_SECONDS = 5.0
