"""Data models for feed_sync."""

from .identity import ArticleIdentity, identity_of
from .schemas import (
    Article,
    FavoritesSnapshot,
    Feed,
    FeedListSnapshot,
    FeedMetadata,
    FeedStatus,
    RefreshOutcome,
    RefreshStatus,
)

__all__ = [
    "ArticleIdentity",
    "identity_of",
    "Article",
    "FavoritesSnapshot",
    "Feed",
    "FeedListSnapshot",
    "FeedMetadata",
    "FeedStatus",
    "RefreshOutcome",
    "RefreshStatus",
]
