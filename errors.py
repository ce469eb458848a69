"""Exceptions raised by the color extraction pipeline."""

from typing import Optional


class ColorExtractionError(Exception):
    """Base class for every error surfaced by color extraction.

    Carries the name of the failing operation and the offending parameter
    (when there is one) so callers can diagnose without parsing messages.
    """

    def __init__(self, message: str, operation: Optional[str] = None,
                 parameter: Optional[str] = None):
        self.operation = operation
        self.parameter = parameter
        self.detail = message
        super().__init__(self._format(message))

    def _format(self, message: str) -> str:
        prefix = []
        if self.operation:
            prefix.append(self.operation)
        if self.parameter:
            prefix.append(f"parameter '{self.parameter}'")
        if not prefix:
            return message
        return f"{': '.join(prefix)}: {message}"


class DecodeError(ColorExtractionError):
    """Image could not be loaded or decoded."""


class ConfigurationError(ColorExtractionError):
    """Invalid option value, rejected before any clustering work."""


class EmptyInputError(ColorExtractionError):
    """Sampling or aggregation produced nothing to work with."""


class ClusteringError(ColorExtractionError):
    """The clustering routine failed internally."""
