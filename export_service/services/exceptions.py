"""Export pipeline exceptions.

Raised by the store and the service; the API layer maps them to error
codes and HTTP statuses in export_service.core.errors.
"""


class ExportError(Exception):
    """Base exception for export pipeline errors."""

    pass


class ExportNotFoundError(ExportError):
    """Raised when an export job does not exist."""

    pass


class ExportForbiddenError(ExportError):
    """Raised when the caller does not own the export job."""

    pass


class ExportExpiredError(ExportError):
    """Raised when the export artifact has expired or vanished."""

    pass


class ExportStateError(ExportError):
    """Raised when an action is invalid for the job's current status."""

    pass


class ExportInternalError(ExportError):
    """Raised when a stored job is inconsistent with its status."""

    pass


class StaleGenerationError(ExportError):
    """Raised when a worker writes a result for a superseded attempt."""

    pass
