"""Snapshot persistence for feed_sync.

Encodes the favorites feed and the feed list as UTF-8 JSON and stores them in
a ByteStore. Snapshots that fail to decode are treated as absent.
"""

import importlib.resources
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from feed_sync.errors import CorruptSnapshotError
from feed_sync.models.identity import identity_of
from feed_sync.models.schemas import (
    Article,
    FavoritesSnapshot,
    FeedListSnapshot,
    FeedMetadata,
)
from feed_sync.storage.database import ByteStore

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favorites"
FEED_LIST_KEY = "feeds"
SNAPSHOT_VERSION = 1


def encode_favorites(snapshot: FavoritesSnapshot) -> bytes:
    document = {
        "version": SNAPSHOT_VERSION,
        "feed": {
            "name": snapshot.feed.name,
            "description": snapshot.feed.description,
            "link": snapshot.feed.link,
        },
        "articles": [_article_to_dict(a) for a in snapshot.articles],
    }
    return json.dumps(document).encode("utf-8")


def decode_favorites(data: bytes) -> FavoritesSnapshot:
    """Decode a favorites snapshot.

    Articles whose link has no identity are skipped with a warning.

    Raises:
        CorruptSnapshotError: If the data is not a valid favorites snapshot
    """
    try:
        document = json.loads(data.decode("utf-8"))
        feed = document["feed"]
        metadata = FeedMetadata(
            name=str(feed["name"]),
            description=str(feed.get("description") or ""),
            link=str(feed["link"]),
        )
        articles = []
        for entry in document["articles"]:
            article = _article_from_dict(entry)
            if identity_of(article.link) is None:
                logger.warning(f"Skipping favorite with unusable link: {article.link!r}")
                continue
            articles.append(article)
    except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CorruptSnapshotError(f"Invalid favorites snapshot: {e}") from e

    return FavoritesSnapshot(feed=metadata, articles=articles)


def encode_feed_list(snapshot: FeedListSnapshot) -> bytes:
    document = {
        "version": SNAPSHOT_VERSION,
        "feeds": [{"name": name, "url": url} for name, url in snapshot.feeds],
    }
    return json.dumps(document).encode("utf-8")


def decode_feed_list(data: bytes) -> FeedListSnapshot:
    """Decode a feed list snapshot.

    Raises:
        CorruptSnapshotError: If the data is not a valid feed list snapshot
    """
    try:
        document = json.loads(data.decode("utf-8"))
        return FeedListSnapshot(
            feeds=[(str(f.get("name") or ""), str(f["url"])) for f in document["feeds"]]
        )
    except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CorruptSnapshotError(f"Invalid feed list snapshot: {e}") from e


def _article_to_dict(article: Article) -> Dict[str, Any]:
    return {
        "title": article.title,
        "summary": article.summary,
        "author": article.author,
        "link": article.link,
        "published_date": article.published_date.isoformat() if article.published_date else None,
        "starred": article.starred,
    }


def _article_from_dict(data: Dict[str, Any]) -> Article:
    published = data.get("published_date")
    return Article(
        title=str(data.get("title") or ""),
        link=str(data["link"]),
        summary=str(data.get("summary") or ""),
        author=data.get("author"),
        published_date=datetime.fromisoformat(published) if published else None,
        starred=bool(data.get("starred", False)),
    )


class PersistenceGateway:
    """Saves and loads feed_sync snapshots through a ByteStore."""

    def __init__(self, store: ByteStore, default_feeds_path: Optional[Path] = None):
        self.store = store
        self.default_feeds_path = default_feeds_path

    async def save_favorites(self, snapshot: FavoritesSnapshot) -> None:
        await self.store.save(FAVORITES_KEY, encode_favorites(snapshot))
        logger.debug(f"Saved favorites snapshot with {len(snapshot.articles)} articles")

    async def save_feed_list(self, snapshot: FeedListSnapshot) -> None:
        await self.store.save(FEED_LIST_KEY, encode_feed_list(snapshot))
        logger.debug(f"Saved feed list snapshot with {len(snapshot.feeds)} feeds")

    async def try_load_favorites(self) -> Optional[FavoritesSnapshot]:
        """Load the favorites snapshot.

        Returns:
            The snapshot, or None if it is missing or corrupt
        """
        data = await self.store.try_load(FAVORITES_KEY)
        if data is None:
            return None
        try:
            return decode_favorites(data)
        except CorruptSnapshotError as e:
            logger.warning(f"Ignoring corrupt favorites snapshot: {e}")
            return None

    async def try_load_feed_list(self) -> Optional[FeedListSnapshot]:
        """Load the feed list snapshot.

        Returns:
            The snapshot, or None if it is missing or corrupt
        """
        data = await self.store.try_load(FEED_LIST_KEY)
        if data is None:
            return None
        try:
            return decode_feed_list(data)
        except CorruptSnapshotError as e:
            logger.warning(f"Ignoring corrupt feed list snapshot: {e}")
            return None

    def load_default_feed_list(self) -> FeedListSnapshot:
        """Load the bundled default feed list (or the configured override).

        Returns:
            The default list; empty if it cannot be read
        """
        try:
            if self.default_feeds_path is not None:
                data = self.default_feeds_path.read_bytes()
            else:
                data = (
                    importlib.resources.files("feed_sync.storage")
                    .joinpath("default_feeds.json")
                    .read_bytes()
                )
            return decode_feed_list(data)
        except (OSError, CorruptSnapshotError) as e:
            logger.error(f"Failed to load default feed list: {e}")
            return FeedListSnapshot()
