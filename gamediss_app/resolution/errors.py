"""
Exception hierarchy for the resolution engine.

Request-level failures (catalog never loaded) are exceptions. Field-level
failures travel as ErrorKind values inside AggregatedGameData and only
exist as exceptions inside a fetcher.
"""

from typing import Optional

from .models import ErrorKind


class ResolutionError(Exception):
    """Base class for all engine errors."""


class CatalogNotReady(ResolutionError):
    """The catalog has never completed a successful load."""

    def __init__(self, message: str = "Catalog has not been loaded yet"):
        super().__init__(message)


class CatalogRefreshError(ResolutionError):
    """A catalog refresh failed; the previous snapshot stays in place."""


class SourceError(ResolutionError):
    """A source fetcher failed for one field."""

    kind: ErrorKind = ErrorKind.SOURCE_UNAVAILABLE

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class SourceTimeout(SourceError):
    kind = ErrorKind.SOURCE_TIMEOUT


class SourceUnavailable(SourceError):
    kind = ErrorKind.SOURCE_UNAVAILABLE


class SourceParseError(SourceError):
    kind = ErrorKind.SOURCE_PARSE_ERROR
