"""Feed source service.

This module downloads RSS/Atom feeds and turns them into raw payloads. The
refresh engine depends only on the FeedSource protocol, so tests and other
transports can supply their own implementation.
"""

import httpx
import feedparser
import logging
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Protocol

from feed_sync.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class FeedItem:
    """One entry of a fetched feed, before normalization."""

    title: str = ""
    summary: Optional[str] = None
    published_date: Optional[datetime] = None
    link: Optional[str] = None
    links: List[str] = field(default_factory=list)
    authors: List[str] = field(default_factory=list)


@dataclass
class FeedPayload:
    """A fetched feed: channel metadata and its items."""

    title: str = ""
    subtitle: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)


class FeedSource(Protocol):
    """Anything that can fetch a feed by URL."""

    async def fetch(self, uri: str) -> FeedPayload:
        """Fetch and parse a feed.

        Raises:
            FetchError: If the feed cannot be downloaded or parsed
        """
        ...


class HttpFeedSource:
    """FeedSource backed by httpx and feedparser."""

    def __init__(self, user_agent: str = "FeedSync/1.0 (RSS Feed Reader)", timeout: float = 30.0):
        self.user_agent = user_agent
        self.timeout = timeout

    async def fetch(self, uri: str) -> FeedPayload:
        logger.info(f"Fetching feed: {uri}")

        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
        ) as client:
            try:
                response = await client.get(uri)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise FetchError(f"Failed to fetch feed {uri}: {e}") from e

        return parse_payload(response.text)


def parse_payload(text: str) -> FeedPayload:
    """Parse RSS/Atom text into a FeedPayload.

    Args:
        text: Feed document

    Returns:
        The parsed payload

    Raises:
        FetchError: If the document is not a usable feed
    """
    feed = feedparser.parse(text)

    if feed.bozo and not feed.entries:
        raise FetchError(f"Feed parsing error: {feed.bozo_exception}")
    if not feed.entries and not feed.feed.get("title"):
        raise FetchError("Document has neither a feed title nor entries")

    items = [_parse_item(entry) for entry in feed.entries]
    logger.info(f"Parsed {len(items)} items from feed")

    return FeedPayload(
        title=feed.feed.get("title", "").strip(),
        subtitle=feed.feed.get("subtitle") or None,
        items=items,
    )


def _parse_item(entry: dict) -> FeedItem:
    alternates = []
    others = []
    for link in entry.get("links", []):
        href = link.get("href", "")
        if not href:
            continue
        if link.get("rel", "alternate") == "alternate":
            alternates.append(href)
        else:
            others.append(href)
    links = alternates + others

    authors = [a.get("name", "").strip() for a in entry.get("authors", []) if a.get("name")]
    if not authors and entry.get("author"):
        authors = [entry["author"].strip()]

    return FeedItem(
        title=entry.get("title", "").strip(),
        summary=entry.get("summary") or None,
        published_date=_parse_date(entry),
        link=entry.get("link", "").strip() or None,
        links=links,
        authors=authors,
    )


def _parse_date(entry: dict) -> Optional[datetime]:
    """Parse the publication date from a feed entry.

    Args:
        entry: Feed entry dict

    Returns:
        datetime if parsed successfully, None otherwise
    """
    for field_name in ["published", "updated", "created"]:
        date_str = entry.get(field_name, "") or entry.get(f"{field_name}_parsed")

        if not date_str:
            continue

        # Already a time struct (from feedparser)
        if isinstance(date_str, tuple):
            try:
                return datetime(*date_str[:6])
            except (ValueError, TypeError):
                continue

        # RFC 2822 (common in RSS)
        try:
            return parsedate_to_datetime(date_str)
        except (ValueError, TypeError):
            pass

        # ISO 8601 (Atom)
        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            pass

    return None
