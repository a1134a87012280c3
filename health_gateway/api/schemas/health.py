"""Liveness response schema."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Body of ``GET /health``.

    Reports process liveness only; the database is not checked.
    """

    status: Literal["OK"] = "OK"
    message: str = "Server is running"
    environment: str
    runtime_version: str = Field(..., serialization_alias="runtimeVersion")
    node_version: str = Field(
        ...,
        serialization_alias="nodeVersion",
        description="Interpreter version under the key existing clients read",
    )
    uptime: float = Field(..., description="Seconds since the process started")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
