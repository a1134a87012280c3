"""Infrastructure-related constants, particularly for the database."""

POOL_RECYCLE_SECONDS = 3600  # 1 hour
COMMAND_TIMEOUT_SECONDS = 60
