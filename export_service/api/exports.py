"""Export job API endpoints.

- POST  /api/v1/exports
- GET   /api/v1/exports
- GET   /api/v1/exports/{export_id}
- GET   /api/v1/exports/{export_id}/download
- PATCH /api/v1/exports/{export_id}/cancel
- POST  /api/v1/exports/{export_id}/retry

Domain errors raised by the service propagate to the global exception
handler, which maps them to ErrorDetail responses.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse

from export_service.api.schemas import (
    CreateExportRequest,
    ErrorDetail,
    ExportJobResponse,
    ExportListResponse,
)
from export_service.middleware.auth import get_api_key, get_caller_id, require_caller_id
from export_service.models.export_job import ExportFormat, ExportStatus
from export_service.services.export_job_service import ExportJobService
from export_service.services.export_store import ExportFilters

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["exports"], dependencies=[Depends(get_api_key)])

MAX_PAGE_SIZE = 100

_NOT_FOUND = {404: {"description": "Export not found", "model": ErrorDetail}}
_FORBIDDEN = {403: {"description": "Export belongs to another user", "model": ErrorDetail}}
_BAD_STATE = {422: {"description": "Export is in the wrong status", "model": ErrorDetail}}


# Dependency placeholder (configured in main app)
async def get_export_service() -> ExportJobService:
    """Get export job service instance."""
    raise NotImplementedError("Export job service dependency not configured")


@router.post(
    "/exports",
    response_model=ExportJobResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing X-User-Id header", "model": ErrorDetail},
        422: {"description": "Invalid request body", "model": ErrorDetail},
    },
)
async def create_export(
    request: CreateExportRequest,
    caller_id: str = Depends(require_caller_id),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> ExportJobResponse:
    """
    Create an export job.

    The job is persisted as pending and processed in the background; poll
    GET /api/v1/exports/{export_id} for progress.
    """
    job = await export_service.create(
        name=request.name,
        export_format=request.format,
        requested_by=caller_id,
        parameters=request.parameters,
        report_id=request.report_id,
    )
    return ExportJobResponse.from_job(job)


@router.get("/exports", response_model=ExportListResponse)
async def list_exports(
    status_filter: Optional[ExportStatus] = Query(None, alias="status"),  # noqa: B008
    format_filter: Optional[ExportFormat] = Query(None, alias="format"),  # noqa: B008
    requested_by: Optional[str] = Query(None),  # noqa: B008
    page: int = Query(1, ge=1),  # noqa: B008
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> ExportListResponse:
    """List exports, newest first."""
    filters = ExportFilters(status=status_filter, format=format_filter, requested_by=requested_by)
    jobs, total = await export_service.list_exports(filters, page=page, limit=limit)

    return ExportListResponse(
        items=[ExportJobResponse.from_job(job) for job in jobs],
        total=total,
        page=page,
        limit=limit,
    )


@router.get(
    "/exports/{export_id}",
    response_model=ExportJobResponse,
    responses={**_NOT_FOUND, **_FORBIDDEN},
)
async def get_export(
    export_id: str,
    caller_id: Optional[str] = Depends(get_caller_id),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> ExportJobResponse:
    """Get a single export."""
    job = await export_service.get_export_by_id(export_id, requested_by=caller_id)
    return ExportJobResponse.from_job(job)


@router.get(
    "/exports/{export_id}/download",
    response_class=FileResponse,
    responses={
        200: {"description": "Export artifact"},
        **_NOT_FOUND,
        **_FORBIDDEN,
        410: {"description": "Export has expired", "model": ErrorDetail},
        **_BAD_STATE,
    },
)
async def download_export(
    export_id: str,
    caller_id: Optional[str] = Depends(get_caller_id),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> FileResponse:
    """
    Download a completed export.

    Returns the artifact as an attachment named after the export.
    """
    meta = await export_service.get_download_meta(export_id, requested_by=caller_id)

    logger.info(
        "export_download_started",
        export_id=export_id,
        filename=meta.filename,
        file_size=meta.file_size,
    )

    return FileResponse(
        path=meta.file_path,
        media_type=meta.mime_type,
        filename=meta.filename,
        headers={"X-Export-Id": meta.export_id},
    )


@router.patch(
    "/exports/{export_id}/cancel",
    response_model=ExportJobResponse,
    responses={**_NOT_FOUND, **_FORBIDDEN, **_BAD_STATE},
)
async def cancel_export(
    export_id: str,
    caller_id: Optional[str] = Depends(get_caller_id),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> ExportJobResponse:
    """Cancel a pending or processing export."""
    job = await export_service.cancel_export(export_id, requested_by=caller_id)
    return ExportJobResponse.from_job(job)


@router.post(
    "/exports/{export_id}/retry",
    response_model=ExportJobResponse,
    responses={**_NOT_FOUND, **_FORBIDDEN, **_BAD_STATE},
)
async def retry_export(
    export_id: str,
    caller_id: Optional[str] = Depends(get_caller_id),  # noqa: B008
    export_service: ExportJobService = Depends(get_export_service),  # noqa: B008
) -> ExportJobResponse:
    """Retry a failed export from scratch."""
    job = await export_service.retry_export(export_id, requested_by=caller_id)
    return ExportJobResponse.from_job(job)
