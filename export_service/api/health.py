"""Health check endpoints.

- /health: component-level status (storage, runner, sweeper)
- /liveness: process is alive
- /readiness: export directory writable and runner accepting work
"""

import time
from datetime import datetime, timezone
from typing import Literal

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from export_service import __version__
from export_service.api.schemas import (
    ComponentHealth,
    HealthResponse,
    LivenessResponse,
    ReadinessResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Track application start time for uptime calculation
_start_time: float = time.time()


def _check_storage() -> ComponentHealth:
    """Check that the export directory exists and is writable."""
    try:
        from export_service.main import get_storage

        storage = get_storage()
        if not storage.is_writable():
            return ComponentHealth(
                status="unhealthy",
                details={"error": "Export directory not writable"},
            )

        usage = storage.get_disk_usage()
        return ComponentHealth(
            status="healthy",
            details={
                "available_gb": round(usage.available / (1024**3), 2),
                "used_percent": round(usage.percent_used, 1),
            },
        )
    except RuntimeError:
        # Storage not configured yet
        return ComponentHealth(
            status="unhealthy",
            details={"error": "Artifact storage not configured"},
        )
    except Exception as e:
        return ComponentHealth(
            status="unhealthy",
            details={"error": str(e)},
        )


def _check_runner() -> ComponentHealth:
    """Check that the export runner accepts new work."""
    try:
        from export_service.main import get_runner

        runner = get_runner()
        stats = runner.get_stats()
        if not runner.accepting:
            return ComponentHealth(
                status="unhealthy",
                details={"error": "Export runner stopped", **stats},
            )
        return ComponentHealth(status="healthy", details=stats)
    except RuntimeError:
        return ComponentHealth(
            status="unhealthy",
            details={"error": "Export runner not configured"},
        )


def _check_sweeper() -> ComponentHealth:
    try:
        from export_service.main import get_sweeper

        sweeper = get_sweeper()
    except RuntimeError:
        return ComponentHealth(
            status="unhealthy",
            details={"error": "Expiry sweeper not configured"},
        )

    details = {
        "interval_seconds": sweeper.interval,
        "last_expired_count": sweeper.last_expired_count,
    }
    if not sweeper.running:
        return ComponentHealth(status="unhealthy", details={"error": "Expiry sweeper stopped", **details})
    return ComponentHealth(status="healthy", details=details)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "All components healthy"},
        503: {"description": "One or more components unhealthy"},
    },
)
async def health_check() -> JSONResponse:
    """
    Detailed health check endpoint.

    Verifies:
    - Export directory availability and disk usage
    - Export runner state and active exports
    - Expiry sweeper state

    Returns HTTP 200 if all components are healthy,
    HTTP 503 if any component is unhealthy.
    """
    components = {
        "storage": _check_storage(),
        "runner": _check_runner(),
        "sweeper": _check_sweeper(),
    }

    all_healthy = all(c.status == "healthy" for c in components.values())
    overall_status: Literal["healthy", "unhealthy"] = "healthy" if all_healthy else "unhealthy"

    response = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        components=components,
    )

    status_code = status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE

    logger.info(
        "health_check_completed",
        status=overall_status,
        components={k: v.status for k, v in components.items()},
    )

    return JSONResponse(content=response.model_dump(), status_code=status_code)


@router.get("/liveness", response_model=LivenessResponse)
async def liveness_check() -> LivenessResponse:
    """
    Liveness probe endpoint.

    Returns HTTP 200 if the process is alive.
    """
    return LivenessResponse(status="alive")


@router.get(
    "/readiness",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Service is ready to accept traffic"},
        503: {"description": "Service is not ready"},
    },
)
async def readiness_check() -> JSONResponse:
    """
    Readiness probe endpoint.

    Checks:
    - Export directory is writable
    - Export runner is accepting work
    """
    issues = []

    if _check_storage().status != "healthy":
        issues.append("Export directory not writable")
    if _check_runner().status != "healthy":
        issues.append("Export runner not accepting work")

    if issues:
        response = ReadinessResponse(
            status="not_ready",
            ready=False,
            message="; ".join(issues),
        )
        return JSONResponse(
            content=response.model_dump(),
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return JSONResponse(
        content=ReadinessResponse(status="ready", ready=True).model_dump(),
        status_code=status.HTTP_200_OK,
    )
