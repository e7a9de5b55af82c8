"""Core infrastructure: configuration, logging, metrics and error handling."""
