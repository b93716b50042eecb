"""Error taxonomy for library imports."""

from typing import Optional


class SpotifyImportError(Exception):
    """Base class for all import errors."""
    pass


class ScanSkipped(SpotifyImportError):
    """A local file could not be read; it is skipped with a warning."""

    def __init__(self, path: str, cause: str):
        self.path = path
        self.cause = cause
        super().__init__(f"Skipped {path}: {cause}")


class SearchFailed(SpotifyImportError):
    """A search request for a single track failed."""

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Search failed: {cause}")


class TransientError(SpotifyImportError):
    """A retryable playlist failure (rate limit, server error, network)."""

    def __init__(self, cause: str, retry_after: Optional[float] = None):
        self.cause = cause
        self.retry_after = retry_after
        super().__init__(f"Transient failure: {cause}")


class FatalError(SpotifyImportError):
    """A non-retryable playlist failure (auth, permission, quota)."""

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Fatal failure: {cause}")
