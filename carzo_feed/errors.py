"""Error taxonomy for a feed sync run.

Every fatal failure is a :class:`FeedSyncError`; the pipeline catches the base
class at the top level and turns it into a failed sync result.
"""

from __future__ import annotations

from typing import Any


class FeedSyncError(RuntimeError):
    """Raised for fatal sync failures with structured metadata."""

    code = "FEED_SYNC_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.status = status
        self.details = details or {}


class ConfigurationError(FeedSyncError):
    """A required credential or URL is missing."""

    code = "CONFIGURATION"


class NetworkError(FeedSyncError):
    """The feed download failed or returned a non-success status."""

    code = "NETWORK"


class ArchiveError(FeedSyncError):
    """The archive could not be unpacked or held no tabular file."""

    code = "ARCHIVE"


class ParseError(FeedSyncError):
    """The tabular file could not be read as a whole."""

    code = "PARSE"


class DatabaseError(FeedSyncError):
    """A store read or write failed."""

    code = "DATABASE"


class SyncLockedError(FeedSyncError):
    """Another sync run holds the job lock."""

    code = "LOCKED"
