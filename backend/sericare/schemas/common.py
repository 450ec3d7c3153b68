"""
SeriCare Backend — Shared Response Schemas
===========================================

What:  The success envelope, the error body, and the health payload shared by
       every router.
Why:   Clients parse one shape for every endpoint: `success` tells them which
       branch they are on, `message` is displayable, `data` / `error` carry
       the rest.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """
    Base for response bodies that are serialized with camelCase keys
    (uploadId, preventiveMeasures, ...). Python code keeps snake_case.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[T]):
    """
    What:  Success wrapper returned by every JSON endpoint.

    Example:
        {"success": true, "message": "Image uploaded & analyzed", "data": {...}}
    """

    success: bool = Field(default=True)
    message: str = Field(description="Human-readable outcome")
    data: T


class ErrorResponse(BaseModel):
    """
    What:  Standardized error body rendered by the global exception handler.

    Fields:
        error: Machine-readable kind (unauthenticated, validation_error,
               service_unavailable, service_error, persistence_error, ...)
        message: Human-readable description for display to users
        details: Only for validation errors (which field, which limit)
        request_id: Correlation ID for tracing this error in server logs
    """

    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error kind")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Validation context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    classifier: str = Field(description="Inference service: available, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
