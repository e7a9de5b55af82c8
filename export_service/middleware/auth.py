"""API key authentication and caller identity dependencies.

The API key gates access to the service as a whole. The caller identity,
taken from the ``X-User-Id`` header set by the upstream gateway, is what
export ownership is checked against.
"""

import hashlib
from typing import FrozenSet, List, Optional, Set

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import APIKeyHeader

logger = structlog.get_logger(__name__)

API_KEY_HEADER_NAME = "X-API-Key"
USER_ID_HEADER_NAME = "X-User-Id"

api_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)


def hash_api_key(api_key: str) -> str:
    """SHA256 prefix of an API key, safe to log."""
    if not api_key:
        return "empty"
    return hashlib.sha256(api_key.encode()).hexdigest()[:8]


class APIKeyAuth:
    """API key authentication handler.

    Validates keys against a configured set. With no keys configured every
    request is allowed.
    """

    DEFAULT_EXCLUDED_PATHS: FrozenSet[str] = frozenset(
        {
            "/health",
            "/liveness",
            "/readiness",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/metrics",
        }
    )

    def __init__(
        self,
        api_keys: Optional[List[str]] = None,
        excluded_paths: Optional[Set[str]] = None,
    ):
        self._api_keys: Set[str] = set(api_keys) if api_keys else set()
        self._excluded_paths = excluded_paths or self.DEFAULT_EXCLUDED_PATHS
        self._allow_all = len(self._api_keys) == 0

        if self._allow_all:
            logger.warning("auth_disabled_no_api_keys", component="auth")
        else:
            logger.info("auth_initialized", num_keys=len(self._api_keys))

    @property
    def allow_all(self) -> bool:
        """Check if authentication is disabled."""
        return self._allow_all

    def is_path_excluded(self, path: str) -> bool:
        """Check for an exact or sub-path match against the excluded paths."""
        path = path.rstrip("/") or "/"
        return any(
            path == excluded or path.startswith(excluded + "/")
            for excluded in self._excluded_paths
        )

    def validate_api_key(self, api_key: Optional[str]) -> bool:
        if self._allow_all:
            return True
        return bool(api_key) and api_key in self._api_keys

    def authenticate(self, request: Request, api_key: Optional[str]) -> None:
        """
        Authenticate a request.

        Raises:
            HTTPException: 401 if the key is missing or invalid
        """
        path = request.url.path

        if self.is_path_excluded(path) or self.validate_api_key(api_key):
            return

        logger.warning(
            "auth_failed",
            path=path,
            key_hash=hash_api_key(api_key) if api_key else "none",
            client_ip=request.client.host if request.client else "unknown",
        )

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )


# Global auth instance (configured at startup)
_auth_instance: Optional[APIKeyAuth] = None


def configure_auth(api_keys: Optional[List[str]] = None) -> APIKeyAuth:
    """Configure the global auth instance."""
    global _auth_instance
    _auth_instance = APIKeyAuth(api_keys=api_keys)
    return _auth_instance


def get_auth() -> APIKeyAuth:
    """Get the global auth instance, an allow-all instance if unconfigured."""
    if _auth_instance is None:
        return APIKeyAuth()
    return _auth_instance


async def get_api_key(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header),  # noqa: B008
) -> Optional[str]:
    """Extract and validate the API key from the request."""
    get_auth().authenticate(request, api_key)
    return api_key


async def get_caller_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER_NAME),  # noqa: B008
) -> Optional[str]:
    """Caller identity, or None for an unrestricted caller."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


async def require_caller_id(
    caller_id: Optional[str] = Depends(get_caller_id),  # noqa: B008
) -> str:
    """Caller identity for routes that record ownership.

    Raises:
        HTTPException: 400 if the X-User-Id header is missing
    """
    if caller_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"The {USER_ID_HEADER_NAME} header is required",
        )
    return caller_id
