"""Export job data model and lifecycle transition table."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class ExportFormat(str, Enum):
    """File format of an export artifact."""

    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"
    JSON = "json"


class ExportStatus(str, Enum):
    """Status of an export job.

    State transitions:
    - PENDING -> PROCESSING: When the runner picks up the job
    - PROCESSING -> COMPLETED: When the artifact is written
    - PROCESSING -> FAILED: When the producer or the disk write fails
    - PENDING/PROCESSING -> FAILED: When the job is cancelled
    - FAILED -> PENDING: When the job is retried
    - COMPLETED -> EXPIRED: When the artifact passes its expiry or vanishes
    - PROCESSING -> PENDING: Only when resuming jobs orphaned by a restart
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


ALLOWED_TRANSITIONS: Dict[ExportStatus, FrozenSet[ExportStatus]] = {
    ExportStatus.PENDING: frozenset({ExportStatus.PROCESSING, ExportStatus.FAILED}),
    ExportStatus.PROCESSING: frozenset(
        {ExportStatus.COMPLETED, ExportStatus.FAILED, ExportStatus.PENDING}
    ),
    ExportStatus.COMPLETED: frozenset({ExportStatus.EXPIRED}),
    ExportStatus.FAILED: frozenset({ExportStatus.PENDING}),
    ExportStatus.EXPIRED: frozenset(),
}

ACTIVE_STATUSES: FrozenSet[ExportStatus] = frozenset(
    {ExportStatus.PENDING, ExportStatus.PROCESSING}
)

# Only these are ever written to the cache
CACHEABLE_STATUSES: FrozenSet[ExportStatus] = frozenset(
    {ExportStatus.COMPLETED, ExportStatus.FAILED}
)


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed by the transition table."""

    def __init__(self, current: ExportStatus, target: ExportStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot transition export from {current.value} to {target.value}"
        )


def can_transition(current: ExportStatus, target: ExportStatus) -> bool:
    """Check whether ``current -> target`` is a legal transition."""
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: ExportStatus, target: ExportStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ExportJob:
    """Represents a single export request and its lifecycle.

    Artifact fields (file_path, file_size, row_count) are only populated
    while the job is COMPLETED. ``generation`` counts attempts: it is bumped
    on retry and on cancel so that a worker holding an older generation can
    no longer write a result.
    """

    id: str
    name: str
    format: ExportFormat
    requested_by: str
    report_id: Optional[str] = None
    status: ExportStatus = ExportStatus.PENDING
    parameters: Dict[str, Any] = field(default_factory=dict)
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    row_count: Optional[int] = None
    error: Optional[str] = None
    generation: int = 0
    expires_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_active(self) -> bool:
        """Check if the job is pending or processing."""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        """Check if the job is completed, failed or expired."""
        return not self.is_active()

    def is_cacheable(self) -> bool:
        return self.status in CACHEABLE_STATUSES

    def is_owned_by(self, requested_by: Optional[str]) -> bool:
        """Check ownership. A missing identity means an unrestricted caller."""
        return requested_by is None or self.requested_by == requested_by

    def copy(self) -> "ExportJob":
        return replace(self, parameters=dict(self.parameters))

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to a dictionary; the cache stores this form verbatim."""
        return {
            "id": self.id,
            "report_id": self.report_id,
            "name": self.name,
            "format": self.format.value,
            "status": self.status.value,
            "parameters": self.parameters,
            "requested_by": self.requested_by,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "row_count": self.row_count,
            "error": self.error,
            "generation": self.generation,
            "expires_at": _iso(self.expires_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportJob":
        """Rebuild a job from the output of ``to_dict``."""
        return cls(
            id=data["id"],
            report_id=data.get("report_id"),
            name=data["name"],
            format=ExportFormat(data["format"]),
            status=ExportStatus(data["status"]),
            parameters=dict(data.get("parameters") or {}),
            requested_by=data["requested_by"],
            file_path=data.get("file_path"),
            file_size=data.get("file_size"),
            row_count=data.get("row_count"),
            error=data.get("error"),
            generation=data.get("generation", 0),
            expires_at=_parse(data.get("expires_at")),
            started_at=_parse(data.get("started_at")),
            completed_at=_parse(data.get("completed_at")),
            created_at=_parse(data["created_at"]) or utcnow(),
            updated_at=_parse(data["updated_at"]) or utcnow(),
        )
