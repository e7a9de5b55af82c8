"""Producer-specific exceptions."""


class ProducerError(Exception):
    """Base exception for artifact producer errors."""

    pass


class UnsupportedFormatError(ProducerError):
    """Raised when a producer cannot serialize the requested format."""

    pass


class InvalidParametersError(ProducerError):
    """Raised when export parameters cannot be interpreted."""

    pass
