"""Artifact producers for export generation."""

from export_service.producers.base import (
    DEFAULT_EXTENSION,
    DEFAULT_MIME_TYPE,
    ArtifactProducer,
    ProducedArtifact,
    get_extension,
    get_mime_type,
)
from export_service.producers.exceptions import (
    InvalidParametersError,
    ProducerError,
    UnsupportedFormatError,
)
from export_service.producers.sample import SampleRowProducer

__all__ = [
    "DEFAULT_EXTENSION",
    "DEFAULT_MIME_TYPE",
    "ArtifactProducer",
    "InvalidParametersError",
    "ProducedArtifact",
    "ProducerError",
    "SampleRowProducer",
    "UnsupportedFormatError",
    "get_extension",
    "get_mime_type",
]
