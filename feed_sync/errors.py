"""Error kinds and exceptions for feed_sync."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of failures surfaced on feeds and refresh outcomes."""

    TRANSIENT_FETCH_FAILURE = "transient_fetch_failure"
    INVALID_URL_SCHEME = "invalid_url_scheme"
    DUPLICATE_FEED = "duplicate_feed"
    CORRUPT_SNAPSHOT = "corrupt_snapshot"
    CANCELLED = "cancelled"


class FeedSyncError(Exception):
    """Base class for feed_sync errors."""


class FetchError(FeedSyncError):
    """A feed could not be downloaded or parsed."""


class CorruptSnapshotError(FeedSyncError):
    """A persisted snapshot could not be decoded."""
