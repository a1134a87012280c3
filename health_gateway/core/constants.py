"""Core application constants."""

# Request body cap
BYTES_PER_MEBIBYTE = 1024 * 1024
DEFAULT_MAX_BODY_BYTES = 10 * BYTES_PER_MEBIBYTE

# Security and redaction
REDACTED = "[REDACTED]"
DEFAULT_HSTS_MAX_AGE = 15552000  # 180 days in seconds
