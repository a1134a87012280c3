"""Error response schema shared by every failure the gateway answers.

Whatever the origin of a failure (unmatched route, oversized body, a domain
handler raising), clients receive the same JSON object. Stack traces and
internal details stay in the server logs.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field


class ErrorRecord(BaseModel):
    """Normalized error body."""

    success: Literal[False] = Field(
        default=False,
        description="Always false for error responses",
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Resource not found", "Request entity too large"],
    )

    path: str = Field(
        ...,
        description="Path of the request that failed",
        examples=["/api/glucose/readings"],
    )

    method: str = Field(
        ...,
        description="HTTP method of the request that failed",
        examples=["GET", "POST"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the error occurred (ISO-8601, with timezone)",
        examples=["2024-06-14T12:00:00+00:00"],
    )

    environment: str = Field(
        ...,
        description="Environment where the gateway is running",
        examples=["development", "production"],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "success": False,
                    "message": "Resource not found",
                    "path": "/api/unknown",
                    "method": "GET",
                    "timestamp": "2024-06-14T12:00:00+00:00",
                    "environment": "production",
                },
            ]
        }
    }
