"""Asynchronous export job pipeline service."""

__version__ = "1.0.0"
