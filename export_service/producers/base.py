"""Abstract base class for artifact producers and the format tables."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Union

from export_service.models.export_job import ExportFormat

DEFAULT_EXTENSION = "dat"
DEFAULT_MIME_TYPE = "application/octet-stream"

FORMAT_EXTENSIONS: Dict[ExportFormat, str] = {
    ExportFormat.CSV: "csv",
    ExportFormat.JSON: "json",
    ExportFormat.XLSX: "xlsx",
}

FORMAT_MIME_TYPES: Dict[ExportFormat, str] = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _coerce(export_format: Union[ExportFormat, str]) -> Union[ExportFormat, str]:
    try:
        return ExportFormat(export_format)
    except ValueError:
        return export_format


def get_extension(export_format: Union[ExportFormat, str]) -> str:
    """Get the file extension for a format, ``dat`` when unknown."""
    return FORMAT_EXTENSIONS.get(_coerce(export_format), DEFAULT_EXTENSION)  # type: ignore[arg-type]


def get_mime_type(export_format: Union[ExportFormat, str]) -> str:
    """Get the MIME type for a format, ``application/octet-stream`` when unknown."""
    return FORMAT_MIME_TYPES.get(_coerce(export_format), DEFAULT_MIME_TYPE)  # type: ignore[arg-type]


@dataclass
class ProducedArtifact:
    """Serialized export content returned by a producer."""

    rows: int
    content: bytes


class ArtifactProducer(ABC):
    """Abstract base class for export artifact producers.

    The pipeline only depends on this contract; it never inspects what a
    producer queries or how it serializes rows.
    """

    name: str = "base"

    @abstractmethod
    async def produce(
        self,
        export_format: ExportFormat,
        parameters: Dict[str, Any],
        max_rows: int,
    ) -> ProducedArtifact:
        """
        Produce the artifact content for an export.

        Args:
            export_format: Requested file format
            parameters: Filter parameters, passed through verbatim
            max_rows: Upper bound on rows to materialize

        Returns:
            Produced artifact with row count and serialized bytes

        Raises:
            UnsupportedFormatError: If the format cannot be produced
            ProducerError: If generation fails
        """
        pass
