"""Type aliases for request data flowing through the pipeline.

All body types defined here are JSON-serializable so they can be logged and
echoed by the debug handler group.
"""

from typing import Any

# Decoded application/json body
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Decoded application/x-www-form-urlencoded body
type FormData = dict[str, str | list[str]]

# Parsed request body as exposed on the request context
type ParsedBody = JsonValue | FormData

# ASGI scope type for middleware implementations
# Following ASGI spec: https://asgi.readthedocs.io/en/latest/specs/www.html
type AsgiScope = dict[str, Any]
