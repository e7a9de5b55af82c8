"""Prometheus metrics collection for the export service.

Defines request, export, sweep and error metrics and a small helper class
so call sites record them consistently.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("export_service", "Export service application information")

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Export metrics
exports_total = Counter(
    "exports_total",
    "Total export runs by format and outcome",
    ["format", "status"],
)

export_duration_seconds = Histogram(
    "export_duration_seconds",
    "Export run duration in seconds",
    ["format"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

export_size_bytes = Histogram(
    "export_size_bytes",
    "Export artifact size in bytes",
    ["format"],
    buckets=[1e3, 1e4, 1e5, 1e6, 10e6, 50e6, 100e6, 500e6],
)

active_exports = Gauge(
    "active_exports",
    "Number of export runs currently scheduled or executing",
)

# Sweep metrics
exports_expired_total = Counter(
    "exports_expired_total",
    "Total exports transitioned to expired",
    ["reason"],
)

# Error metrics
errors_total = Counter(
    "errors_total",
    "Total errors by error code and endpoint",
    ["error_code", "endpoint"],
)


class MetricsCollector:
    """Centralized metrics collection and update helper."""

    @staticmethod
    def record_request(
        method: str,
        endpoint: str,
        status: int,
        duration: float,
    ) -> None:
        """Record HTTP request metrics."""
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    @staticmethod
    def record_export(
        export_format: str,
        status: str,
        duration: float,
        size: int,
    ) -> None:
        """Record the outcome of one export run.

        Args:
            export_format: Export format value (e.g. 'csv').
            status: 'completed', 'failed', 'cancelled' or 'discarded'.
            duration: Run duration in seconds.
            size: Artifact size in bytes (0 when nothing was kept).
        """
        exports_total.labels(format=export_format, status=status).inc()
        export_duration_seconds.labels(format=export_format).observe(duration)
        if size > 0:
            export_size_bytes.labels(format=export_format).observe(size)

    @staticmethod
    def set_active_exports(count: int) -> None:
        active_exports.set(count)

    @staticmethod
    def record_expired(reason: str, count: int = 1) -> None:
        """Record expired exports ('sweep' or 'missing_file')."""
        if count > 0:
            exports_expired_total.labels(reason=reason).inc(count)

    @staticmethod
    def record_error(error_code: str, endpoint: str) -> None:
        """Record an error occurrence."""
        errors_total.labels(error_code=error_code, endpoint=endpoint).inc()


def initialize_metrics(version: str) -> None:
    """Initialize application metrics with version information."""
    app_info.info({"version": version})
