"""
Exception hierarchy for TenderFetch.

Fatal conditions (the portal cannot be reached) are separated from
per-entity failures (a marker never appeared, a download was lost) so the
sync runner can decide whether to abort the run or move on.
"""

from __future__ import annotations


class TenderFetchError(Exception):
    """Base exception for all TenderFetch errors."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause


# =============================================================================
# Navigation
# =============================================================================


class ConnectivityError(TenderFetchError):
    """Top page unreachable or answered with a non-OK status."""
    pass


class NavigationError(TenderFetchError):
    """Walker asked to move from the wrong state, or a frame could not be resolved."""
    pass


class ExtractionError(TenderFetchError):
    """Expected document structure is missing."""
    pass


class MarkerNotFound(ExtractionError):
    """A marker selector did not appear within the bounded wait."""

    def __init__(self, selector: str, url: str | None = None, cause: Exception | None = None):
        super().__init__(f"Marker not found: {selector}", url=url, cause=cause)
        self.selector = selector


# =============================================================================
# Downloads, ledger and mirror
# =============================================================================


class DownloadError(TenderFetchError):
    """A single attachment download could not be confirmed."""
    pass


class LedgerError(TenderFetchError):
    """Ledger row rejected or ledger file could not be written."""
    pass


class MirrorError(TenderFetchError):
    """Remote mirror client could not be set up."""
    pass
