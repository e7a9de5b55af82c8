"""Tests for API endpoints."""

from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from export_service.api import exports, health
from export_service.core.errors import global_exception_handler
from export_service.middleware.auth import configure_auth
from export_service.models.export_job import ExportFormat, ExportJob, ExportStatus
from export_service.services.exceptions import (
    ExportError,
    ExportExpiredError,
    ExportForbiddenError,
    ExportNotFoundError,
    ExportStateError,
)
from export_service.services.export_job_service import DownloadMeta
from export_service.services.storage import DiskUsage

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_export_service() -> MagicMock:
    service = MagicMock()
    service.create = AsyncMock()
    service.list_exports = AsyncMock(return_value=([], 0))
    service.get_export_by_id = AsyncMock()
    service.get_download_meta = AsyncMock()
    service.cancel_export = AsyncMock()
    service.retry_export = AsyncMock()
    return service


@pytest.fixture
def app(mock_export_service: MagicMock) -> FastAPI:
    """Create a test FastAPI application with a mocked export service."""
    configure_auth(api_keys=None)

    app = FastAPI()
    app.include_router(health.router)
    app.include_router(exports.router)
    app.add_exception_handler(ExportError, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)

    async def override() -> MagicMock:
        return mock_export_service

    app.dependency_overrides[exports.get_export_service] = override
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def sample_job() -> ExportJob:
    return ExportJob(
        id="job-123",
        name="Revenue Q3",
        format=ExportFormat.CSV,
        requested_by="alice",
        parameters={"limit": 10},
        file_path="/tmp/exports/job-123.csv",
    )


# ============================================================================
# Create
# ============================================================================


class TestCreateExport:
    """Tests for POST /api/v1/exports."""

    def test_create(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        mock_export_service.create.return_value = sample_job

        response = client.post(
            "/api/v1/exports",
            json={"name": " Revenue Q3 ", "format": "csv", "parameters": {"limit": 10}},
            headers={"X-User-Id": "alice"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "job-123"
        assert data["status"] == "pending"
        assert data["format"] == "csv"
        assert "file_path" not in data
        assert "generation" not in data
        mock_export_service.create.assert_awaited_once_with(
            name="Revenue Q3",
            export_format=ExportFormat.CSV,
            requested_by="alice",
            parameters={"limit": 10},
            report_id=None,
        )

    def test_requires_user_header(
        self, client: TestClient, mock_export_service: MagicMock
    ) -> None:
        response = client.post("/api/v1/exports", json={"name": "x", "format": "csv"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        mock_export_service.create.assert_not_awaited()

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "x", "format": "docx"},
            {"name": "   ", "format": "csv"},
            {"name": "x" * 256, "format": "csv"},
            {"format": "csv"},
        ],
    )
    def test_invalid_body(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/v1/exports", json=body, headers={"X-User-Id": "alice"})

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"


# ============================================================================
# Read
# ============================================================================


class TestReadExports:
    """Tests for listing and fetching exports."""

    def test_list_with_filters(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        mock_export_service.list_exports.return_value = ([sample_job], 7)

        response = client.get(
            "/api/v1/exports",
            params={"status": "pending", "format": "csv", "requested_by": "alice", "page": 2, "limit": 5},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 7
        assert data["page"] == 2
        assert data["limit"] == 5
        assert [item["id"] for item in data["items"]] == ["job-123"]

        filters = mock_export_service.list_exports.call_args.args[0]
        assert filters.status == ExportStatus.PENDING
        assert filters.format == ExportFormat.CSV
        assert filters.requested_by == "alice"

    def test_list_limit_is_bounded(self, client: TestClient) -> None:
        assert client.get("/api/v1/exports", params={"limit": 101}).status_code == 422

    def test_get_export(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        mock_export_service.get_export_by_id.return_value = sample_job

        response = client.get("/api/v1/exports/job-123", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        assert response.json()["name"] == "Revenue Q3"
        mock_export_service.get_export_by_id.assert_awaited_once_with(
            "job-123", requested_by="alice"
        )

    def test_get_without_identity_is_unrestricted(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        mock_export_service.get_export_by_id.return_value = sample_job

        client.get("/api/v1/exports/job-123")

        mock_export_service.get_export_by_id.assert_awaited_once_with("job-123", requested_by=None)

    @pytest.mark.parametrize(
        "exc,status,code",
        [
            (ExportNotFoundError("Export not found: job-123"), 404, "EXPORT_NOT_FOUND"),
            (ExportForbiddenError("Export job-123 belongs to another user"), 403, "EXPORT_FORBIDDEN"),
        ],
    )
    def test_get_errors(
        self,
        client: TestClient,
        mock_export_service: MagicMock,
        exc: Exception,
        status: int,
        code: str,
    ) -> None:
        mock_export_service.get_export_by_id.side_effect = exc

        response = client.get("/api/v1/exports/job-123")

        assert response.status_code == status
        assert response.json()["error_code"] == code
        assert response.json()["message"] == str(exc)


# ============================================================================
# Download
# ============================================================================


class TestDownloadExport:
    """Tests for GET /api/v1/exports/{id}/download."""

    def test_download(
        self, client: TestClient, mock_export_service: MagicMock, tmp_path: Path
    ) -> None:
        artifact = tmp_path / "job-123.csv"
        artifact.write_bytes(b"a,b\n1,2\n")
        mock_export_service.get_download_meta.return_value = DownloadMeta(
            export_id="job-123",
            filename="Revenue_Q3.csv",
            mime_type="text/csv",
            file_path=str(artifact),
            file_size=8,
        )

        response = client.get("/api/v1/exports/job-123/download")

        assert response.status_code == 200
        assert response.content == b"a,b\n1,2\n"
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-length"] == "8"
        assert response.headers["x-export-id"] == "job-123"
        assert "attachment" in response.headers["content-disposition"]
        assert "Revenue_Q3.csv" in response.headers["content-disposition"]

    @pytest.mark.parametrize(
        "exc,status,code",
        [
            (ExportExpiredError("Export has expired: job-123"), 410, "EXPORT_EXPIRED"),
            (ExportStateError("Export is not ready for download"), 422, "INVALID_EXPORT_STATE"),
            (ExportNotFoundError("Export not found: job-123"), 404, "EXPORT_NOT_FOUND"),
        ],
    )
    def test_download_errors(
        self,
        client: TestClient,
        mock_export_service: MagicMock,
        exc: Exception,
        status: int,
        code: str,
    ) -> None:
        mock_export_service.get_download_meta.side_effect = exc

        response = client.get("/api/v1/exports/job-123/download")

        assert response.status_code == status
        assert response.json()["error_code"] == code


# ============================================================================
# Cancel / retry
# ============================================================================


class TestCancelAndRetry:
    """Tests for cancel and retry endpoints."""

    def test_cancel(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        sample_job.status = ExportStatus.FAILED
        sample_job.error = "Cancelled by user"
        mock_export_service.cancel_export.return_value = sample_job

        response = client.patch("/api/v1/exports/job-123/cancel", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["error"] == "Cancelled by user"

    def test_cancel_wrong_state(self, client: TestClient, mock_export_service: MagicMock) -> None:
        mock_export_service.cancel_export.side_effect = ExportStateError(
            "Cannot cancel export in status 'completed'"
        )

        response = client.patch("/api/v1/exports/job-123/cancel")

        assert response.status_code == 422
        assert response.json()["message"] == "Cannot cancel export in status 'completed'"

    def test_retry(
        self, client: TestClient, mock_export_service: MagicMock, sample_job: ExportJob
    ) -> None:
        mock_export_service.retry_export.return_value = sample_job

        response = client.post("/api/v1/exports/job-123/retry")

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        mock_export_service.retry_export.assert_awaited_once_with("job-123", requested_by=None)

    def test_retry_wrong_state(self, client: TestClient, mock_export_service: MagicMock) -> None:
        mock_export_service.retry_export.side_effect = ExportStateError(
            "Cannot retry export in status 'completed'"
        )

        response = client.post("/api/v1/exports/job-123/retry")

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_EXPORT_STATE"


# ============================================================================
# Auth
# ============================================================================


class TestAuthentication:
    """Tests for API key enforcement on export routes."""

    def test_missing_key_rejected(self, app: FastAPI) -> None:
        configure_auth(api_keys=["secret"])
        try:
            with TestClient(app) as client:
                response = client.get("/api/v1/exports")
        finally:
            configure_auth(api_keys=None)

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTH_FAILED"

    def test_valid_key_accepted(self, app: FastAPI) -> None:
        configure_auth(api_keys=["secret"])
        try:
            with TestClient(app) as client:
                response = client.get("/api/v1/exports", headers={"X-API-Key": "secret"})
        finally:
            configure_auth(api_keys=None)

        assert response.status_code == 200


# ============================================================================
# Health
# ============================================================================


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_liveness(self, client: TestClient) -> None:
        response = client.get("/liveness")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_readiness_ready(self, client: TestClient) -> None:
        storage = MagicMock()
        storage.is_writable.return_value = True
        storage.get_disk_usage.return_value = DiskUsage(
            total=100, used=40, available=60, percent_used=40.0
        )
        runner = MagicMock()
        runner.accepting = True
        runner.get_stats.return_value = {"scheduled": 0}

        with patch("export_service.main.get_storage", return_value=storage), patch(
            "export_service.main.get_runner", return_value=runner
        ):
            response = client.get("/readiness")

        assert response.status_code == 200
        assert response.json()["ready"] is True

    def test_readiness_not_ready(self, client: TestClient) -> None:
        storage = MagicMock()
        storage.is_writable.return_value = False
        runner = MagicMock()
        runner.accepting = False
        runner.get_stats.return_value = {}

        with patch("export_service.main.get_storage", return_value=storage), patch(
            "export_service.main.get_runner", return_value=runner
        ):
            response = client.get("/readiness")

        assert response.status_code == 503
        data = response.json()
        assert data["ready"] is False
        assert "Export directory not writable" in data["message"]
        assert "Export runner not accepting work" in data["message"]
