"""Middleware package for the API."""

from export_service.middleware.auth import (
    APIKeyAuth,
    configure_auth,
    get_api_key,
    get_caller_id,
    require_caller_id,
)

__all__ = [
    "APIKeyAuth",
    "configure_auth",
    "get_api_key",
    "get_caller_id",
    "require_caller_id",
]
