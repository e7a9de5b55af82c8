"""E2E test configuration and fixtures.

These fixtures start the real application, lifespan included, with:
- A temporary export directory
- API key authentication configured
- A short sweep interval
"""

import os
import tempfile
import time
from typing import Any, Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient

E2E_API_KEY = "e2e-test-api-key"


@pytest.fixture(scope="module")
def temp_export_dir() -> Generator[str, None, None]:
    """Create a temporary directory for export artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(scope="module")
def e2e_env(temp_export_dir: str) -> Generator[None, None, None]:
    """Set up environment variables for E2E testing."""
    original_env: dict[str, str | None] = {}
    env_vars = {
        "APP_SECURITY_API_KEYS": f'["{E2E_API_KEY}"]',
        "APP_LOGGING_LEVEL": "WARNING",
        "APP_STORAGE_EXPORT_DIR": temp_export_dir,
        "APP_EXPORTS_MAX_ROWS": "500",
        "APP_CONFIG_PATH": os.path.join(temp_export_dir, "absent.yaml"),
    }

    for key, value in env_vars.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield

    for key, original_value in original_env.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture(scope="module")
def e2e_client(e2e_env: None) -> Generator[TestClient, None, None]:
    """Create a test client running the full application lifespan."""
    # Import after environment is set
    from export_service.main import create_app

    app = create_app()

    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Authentication and identity headers for API requests."""
    return {"X-API-Key": E2E_API_KEY, "X-User-Id": "e2e-user"}


@pytest.fixture
def wait_for_status(
    e2e_client: TestClient, auth_headers: Dict[str, str]
) -> Callable[..., Dict[str, Any]]:
    """Poll an export until it reaches one of the given statuses."""

    def _wait(export_id: str, *statuses: str, timeout: float = 5.0) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        while True:
            response = e2e_client.get(f"/api/v1/exports/{export_id}", headers=auth_headers)
            assert response.status_code == 200, response.text
            data = response.json()
            if data["status"] in statuses:
                return data
            if time.monotonic() > deadline:
                raise AssertionError(f"Export {export_id} stuck in {data['status']}")
            time.sleep(0.05)

    return _wait
