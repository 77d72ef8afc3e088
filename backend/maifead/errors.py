"""
Error taxonomy for feed ingestion.

Only source-level failures travel upward; item-level enrichment problems
are absorbed by the adapters and degrade the item instead.
"""
from typing import Optional


class IngestionError(Exception):
    """Base class for all ingestion failures."""


class ResolutionError(IngestionError):
    """A user-supplied reference could not be turned into a fetchable feed."""


class FetchError(IngestionError):
    """The primary feed of a source could not be retrieved or parsed."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(f"Failed to fetch feed {url}: {detail}")


class EnrichmentError(IngestionError):
    """A secondary lookup (gallery, score, avatar, thread) failed."""


class PersistenceError(IngestionError):
    """The item store is unavailable or rejected a write."""
