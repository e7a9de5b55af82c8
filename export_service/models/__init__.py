"""Data models for the application."""

from export_service.models.export_job import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    CACHEABLE_STATUSES,
    ExportFormat,
    ExportJob,
    ExportStatus,
    InvalidTransitionError,
    can_transition,
    ensure_transition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "CACHEABLE_STATUSES",
    "ExportFormat",
    "ExportJob",
    "ExportStatus",
    "InvalidTransitionError",
    "can_transition",
    "ensure_transition",
]
