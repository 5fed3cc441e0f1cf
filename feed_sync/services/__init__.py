"""Services for feed_sync."""

from .collection import FeedCollectionManager
from .favorites import FavoritesIndex
from .feed_source import FeedItem, FeedPayload, FeedSource, HttpFeedSource
from .normalizer import normalize_item, normalize_payload
from .refresh import RefreshCoordinator

__all__ = [
    "FeedCollectionManager",
    "FavoritesIndex",
    "FeedItem",
    "FeedPayload",
    "FeedSource",
    "HttpFeedSource",
    "normalize_item",
    "normalize_payload",
    "RefreshCoordinator",
]
