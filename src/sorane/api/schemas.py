"""
Response models for the HTTP surface.

The browser collector only ever reads ``success`` and ``message``; field
errors are present on 422 responses.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class IntakeResponse(BaseModel):
    """Body of every ``POST /sorane/js-errors`` response."""

    success: bool = Field(description="Whether the error was accepted (ignored and sampled-out count as accepted)")
    message: str = Field(description="Human-readable outcome")
    errors: dict[str, list[str]] | None = Field(
        default=None, description="Field path → validation messages (422 only)"
    )


class HealthResponse(BaseModel):
    """Pipeline health for liveness checks and dashboards."""

    status: str = Field(description="'healthy' or 'degraded'")
    healthy: bool
    timestamp: str | None = None
    pauses: dict[str, Any] = Field(default_factory=dict)
    buffers: dict[str, Any] = Field(default_factory=dict)
    scheduler: dict[str, Any] = Field(default_factory=dict)


__all__ = ["IntakeResponse", "HealthResponse"]
