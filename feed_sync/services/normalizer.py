"""Turn raw feed items into Articles."""

import logging
import re
import warnings
from typing import List, Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

from feed_sync.models.identity import identity_of
from feed_sync.models.schemas import Article
from feed_sync.services.feed_source import FeedItem, FeedPayload

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def strip_markup(text: Optional[str]) -> str:
    """Reduce rich text to plain text: tags removed, entities decoded."""
    if not text:
        return ""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        plain = BeautifulSoup(text, "lxml").get_text(" ")
    return _WHITESPACE.sub(" ", plain).strip()


def normalize_item(item: FeedItem) -> Optional[Article]:
    """Build an Article from a feed item.

    The item link wins, otherwise the first alternate link is used. Items
    without a usable link have no identity and are dropped.

    Args:
        item: Raw feed item

    Returns:
        The Article, or None if the item has no usable link
    """
    link = item.link or next((l for l in item.links if l), None)
    if identity_of(link) is None:
        logger.debug(f"Dropping item without usable link: {item.title!r}")
        return None

    author = next((a for a in item.authors if a and a.strip()), None)

    return Article(
        title=item.title.strip(),
        link=link.strip(),
        summary=strip_markup(item.summary),
        author=author.strip() if author else None,
        published_date=item.published_date,
    )


def normalize_payload(payload: FeedPayload) -> List[Article]:
    """Normalize every item of a payload, keeping source order."""
    articles = []
    for item in payload.items:
        article = normalize_item(item)
        if article is not None:
            articles.append(article)
    return articles
