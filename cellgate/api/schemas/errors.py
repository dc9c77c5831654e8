"""Standardized error response schemas.

Every error leaving the API, whether raised by a cell, by the router or by
FastAPI itself, is rendered as an ``ErrorResponse`` so clients can branch on
``error_code`` and quote ``correlation_id`` when reporting problems.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service information for error context."""

    name: str = Field(
        ...,
        description="Name of the service",
        examples=["Cell Gateway"],
    )

    version: str = Field(
        ...,
        description="Version of the service",
        examples=["0.1.0"],
    )

    environment: str = Field(
        ...,
        description="Environment where the service is running",
        examples=["development", "staging", "production"],
    )


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["VALIDATION_ERROR", "NOT_FOUND", "PERMISSION_DENIED"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Invalid payload - tenantId: Field required"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details, such as the offending fields",
        examples=[{"fields": ["tenantId"]}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
        examples=["2026-06-14T12:00:00+00:00"],
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "HIGH"],
    )

    service_info: ServiceInfo | None = Field(
        default=None,
        description="Information about the service that generated the error",
    )

    request_id: str | None = Field(
        default=None,
        description=(
            "Unique request identifier (different from correlation_id "
            "which can span multiple services)"
        ),
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error_code": "VALIDATION_ERROR",
                    "message": "Invalid payload - tenantId: Field required",
                    "details": {"fields": ["tenantId"]},
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2026-06-14T12:00:00+00:00",
                    "severity": "LOW",
                    "service_info": {
                        "name": "Cell Gateway",
                        "version": "0.1.0",
                        "environment": "production",
                    },
                },
                {
                    "error_code": "NOT_FOUND",
                    "message": "No cell registered at 'inventory/Unknown'",
                    "details": {"destination": "inventory/Unknown"},
                    "timestamp": "2026-06-14T12:00:01+00:00",
                    "severity": "LOW",
                },
            ]
        }
    }
