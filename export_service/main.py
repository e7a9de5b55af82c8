"""FastAPI application entry point.

This module assembles all components and creates the main application.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from export_service import __version__
from export_service.api import exports, health, metrics
from export_service.core.config import ConfigService, MonitoringConfig, SecurityConfig
from export_service.core.errors import APIError, global_exception_handler
from export_service.core.logging import clear_request_id, configure_logging, set_request_id
from export_service.core.metrics import MetricsCollector, initialize_metrics
from export_service.middleware.auth import configure_auth
from export_service.models.export_job import InvalidTransitionError
from export_service.producers.sample import SampleRowProducer
from export_service.services.exceptions import ExportError
from export_service.services.expiry_sweeper import ExpirySweeper
from export_service.services.export_cache import ExportCache
from export_service.services.export_job_service import ExportJobService
from export_service.services.export_runner import ExportRunner
from export_service.services.export_store import InMemoryExportJobStore
from export_service.services.storage import ArtifactStorage, StorageError

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics.

    Records request count and duration for all endpoints,
    using FastAPI route templates to normalize paths.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and record metrics."""
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Fixed label for unmatched routes to prevent unbounded cardinality
        route = request.scope.get("route")
        endpoint = route.path if route else "/unmatched"

        MetricsCollector.record_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration=duration,
        )

        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the logging context and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# Global service instances
_storage: Optional[ArtifactStorage] = None
_runner: Optional[ExportRunner] = None
_export_service: Optional[ExportJobService] = None
_sweeper: Optional[ExpirySweeper] = None


def get_storage() -> ArtifactStorage:
    """Get the global artifact storage instance."""
    if _storage is None:
        raise RuntimeError("Artifact storage not configured")
    return _storage


def get_runner() -> ExportRunner:
    """Get the global export runner instance."""
    if _runner is None:
        raise RuntimeError("Export runner not configured")
    return _runner


def get_export_service() -> ExportJobService:
    """Get the global export job service instance."""
    if _export_service is None:
        raise RuntimeError("Export job service not configured")
    return _export_service


def get_sweeper() -> ExpirySweeper:
    """Get the global expiry sweeper instance."""
    if _sweeper is None:
        raise RuntimeError("Expiry sweeper not configured")
    return _sweeper


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    global _storage, _runner, _export_service, _sweeper

    logger.info("application_starting", version=__version__)

    initialize_metrics(__version__)

    config_service = ConfigService()
    config = config_service.load()
    config_service.validate()

    configure_logging(config.logging.level, config.logging.format)

    logger.info(
        "configuration_loaded",
        server_port=config.server.port,
        export_dir=config.storage.export_dir,
        max_concurrent=config.exports.max_concurrent,
    )

    configure_auth(api_keys=config.security.api_keys)

    _storage = ArtifactStorage(config.storage)
    try:
        _storage.initialize()
    except StorageError as e:
        if not config.security.allow_degraded_start:
            raise
        # Readiness reports the directory until it becomes writable
        logger.warning("storage_unavailable_degraded_start", error=str(e))

    _runner = ExportRunner(max_concurrent=config.exports.max_concurrent)
    _export_service = ExportJobService(
        store=InMemoryExportJobStore(),
        cache=ExportCache(ttl=config.exports.cache_ttl, maxsize=config.exports.cache_size),
        storage=_storage,
        producer=SampleRowProducer(),
        runner=_runner,
        config=config.exports,
    )

    if config.exports.resume_on_startup:
        await _export_service.resume_pending()

    _sweeper = ExpirySweeper(_export_service, interval=config.exports.sweep_interval)
    await _sweeper.start()

    logger.info("application_startup_complete", version=__version__)

    yield

    logger.info("application_shutting_down")

    await _sweeper.stop()
    await _runner.stop()

    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Export Service API",
        description="Asynchronous export jobs: create, track, download, cancel and retry",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Default ["*"] for development; override via APP_SECURITY_CORS_ORIGINS env var
    security_config = SecurityConfig()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=security_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Export-Id", REQUEST_ID_HEADER],
    )

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # Register global exception handlers
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(APIError, global_exception_handler)
    app.add_exception_handler(ExportError, global_exception_handler)
    app.add_exception_handler(InvalidTransitionError, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)

    # Override dependency injection for routers
    app.dependency_overrides[exports.get_export_service] = get_export_service

    # Register routers
    app.include_router(health.router)
    app.include_router(exports.router)
    if MonitoringConfig().metrics_enabled:
        app.include_router(metrics.router)

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn  # type: ignore[import-not-found]

    uvicorn.run(app, host="0.0.0.0", port=8000)  # nosec B104
