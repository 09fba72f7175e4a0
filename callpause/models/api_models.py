"""
API Models for Request/Response Serialization

Shared response envelopes used across controllers.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Response for the health check endpoint."""
    status: str = Field(description="Overall status ('healthy', 'degraded')")
    service: str = Field(description="Service name")
    version: str = Field(description="Application version")
    timestamp: str = Field(description="ISO-8601 UTC timestamp")
    services: Dict[str, Any] = Field(default_factory=dict, description="Per-dependency status")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(description="Error type or category")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp_us: int = Field(description="When the error occurred (microseconds since epoch UTC)")
