"""API routers."""

from export_service.api import exports, health, metrics

__all__ = ["exports", "health", "metrics"]
