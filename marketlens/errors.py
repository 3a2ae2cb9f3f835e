"""Error taxonomy for the matching engine."""

from typing import Optional


class MarketLensError(Exception):
    """Base class for all engine errors."""


class VocabularyLoadError(MarketLensError):
    """A keyword list could not be read. Fatal: nothing can be tagged."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not load vocabulary from {source}: {reason}")


class DataSourceError(MarketLensError):
    """The market data source failed before any page was obtained."""

    def __init__(self, message: str, offset: int = 0):
        self.offset = offset
        super().__init__(message)


class IngestionError(MarketLensError):
    """Raised by an explicit refresh when the rebuild did not complete."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class IndexFormatError(MarketLensError):
    """An exported index document is malformed or has an unknown version."""
