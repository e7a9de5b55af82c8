"""Request and response schemas for API endpoints.

This module provides Pydantic models for API request validation
and response serialization with OpenAPI examples.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from export_service.models.export_job import ExportFormat, ExportJob, ExportStatus

MAX_NAME_LENGTH = 255


class CreateExportRequest(BaseModel):
    """Body of POST /api/v1/exports."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_NAME_LENGTH,
        description="Display name, also used for the download filename",
        examples=["Q3 Revenue"],
    )
    format: ExportFormat = Field(..., description="Artifact format", examples=["csv"])
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque producer parameters",
        examples=[{"limit": 500, "entity": "orders"}],
    )
    report_id: Optional[str] = Field(
        None,
        description="Report the export was generated from",
        examples=["rep-2f1c"],
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject names that are only whitespace."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Export name must not be blank")
        return stripped


class ExportJobResponse(BaseModel):
    """Export job as returned by every job-level endpoint."""

    id: str = Field(..., examples=["550e8400-e29b-41d4-a716-446655440000"])
    name: str = Field(..., examples=["Q3 Revenue"])
    format: ExportFormat = Field(..., examples=["csv"])
    status: ExportStatus = Field(..., examples=["completed"])
    requested_by: str = Field(..., examples=["user-42"])
    report_id: Optional[str] = Field(None, examples=["rep-2f1c"])
    parameters: Dict[str, Any] = Field(default_factory=dict)
    file_size: Optional[int] = Field(None, description="Artifact size in bytes", examples=[20480])
    row_count: Optional[int] = Field(None, examples=[1000])
    error: Optional[str] = Field(None, examples=["Cancelled by user"])
    expires_at: Optional[str] = Field(None, examples=["2025-12-26T10:30:00+00:00"])
    started_at: Optional[str] = Field(None, examples=["2025-12-25T10:30:01+00:00"])
    completed_at: Optional[str] = Field(None, examples=["2025-12-25T10:30:04+00:00"])
    created_at: str = Field(..., examples=["2025-12-25T10:30:00+00:00"])
    updated_at: str = Field(..., examples=["2025-12-25T10:30:04+00:00"])

    @classmethod
    def from_job(cls, job: ExportJob) -> "ExportJobResponse":
        # The server-side file path is never exposed
        data = job.to_dict()
        data.pop("file_path", None)
        data.pop("generation", None)
        return cls(**data)


class ExportListResponse(BaseModel):
    """One page of exports, newest first."""

    items: List[ExportJobResponse]
    total: int = Field(..., description="Number of exports matching the filters", examples=[42])
    page: int = Field(..., examples=[1])
    limit: int = Field(..., examples=[20])


class ComponentHealth(BaseModel):
    """Health status of a single component."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    details: Optional[Dict[str, Any]] = Field(default=None, examples=[{"active_exports": 2}])


class HealthResponse(BaseModel):
    """Detailed health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., examples=["healthy"])
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    version: str = Field(..., examples=["1.0.0"])
    uptime_seconds: float = Field(..., examples=[3600.5])
    components: Dict[str, ComponentHealth]


class LivenessResponse(BaseModel):
    """Simple liveness check response for container orchestration."""

    status: Literal["alive"] = Field(..., examples=["alive"])


class ReadinessResponse(BaseModel):
    """Readiness check response for load balancer integration."""

    status: Literal["ready", "not_ready"] = Field(..., examples=["ready"])
    ready: bool = Field(..., examples=[True])
    message: Optional[str] = Field(default=None, examples=["Export directory not writable"])


class ErrorDetail(BaseModel):
    """Structured error response.

    All API errors follow this format with machine-readable error codes
    and optional suggestions for resolution.
    """

    error_code: str = Field(
        ...,
        description="Machine-readable error code",
        examples=["EXPORT_NOT_FOUND", "EXPORT_EXPIRED", "INVALID_EXPORT_STATE"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Export not found: 550e8400-e29b-41d4-a716-446655440000"],
    )
    details: Optional[str] = Field(
        None,
        description="Additional error context",
        examples=["body.format: Input should be 'csv', 'xlsx', 'pdf' or 'json'"],
    )
    timestamp: str = Field(..., examples=["2025-12-25T10:30:00Z"])
    request_id: Optional[str] = Field(
        None,
        description="Request ID for tracing",
        examples=["req-550e8400-e29b-41d4"],
    )
    suggestion: Optional[str] = Field(
        None,
        description="Suggested action to resolve the error",
        examples=["Create a new export to download the data again"],
    )
