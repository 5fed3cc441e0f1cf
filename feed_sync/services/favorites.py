"""Favorites index.

Holds the canonical instance of every starred article, keyed by identity, so
that the same logical article shows the same starred state in every feed.
"""

import logging
from typing import Dict, Iterator, Optional

from feed_sync.models.identity import ArticleIdentity
from feed_sync.models.schemas import Article

logger = logging.getLogger(__name__)


class FavoritesIndex:
    """Mapping of identity to canonical starred Article."""

    def __init__(self) -> None:
        self._articles: Dict[ArticleIdentity, Article] = {}

    def add(self, article: Article) -> Article:
        """Insert an article as canonical unless its identity is already indexed.

        Args:
            article: Article to star

        Returns:
            The canonical instance for the article's identity
        """
        identity = article.identity
        canonical = self._articles.get(identity)
        if canonical is None:
            canonical = article
            self._articles[identity] = canonical
            logger.debug(f"Indexed favorite {identity}")
        canonical.starred = True
        return canonical

    def remove(self, identity: ArticleIdentity) -> Optional[Article]:
        """Drop an identity from the index.

        Returns:
            The removed canonical instance, or None if it was not indexed
        """
        canonical = self._articles.pop(identity, None)
        if canonical is not None:
            canonical.starred = False
            logger.debug(f"Removed favorite {identity}")
        return canonical

    def lookup(self, identity: ArticleIdentity) -> Optional[Article]:
        return self._articles.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._articles

    def __len__(self) -> int:
        return len(self._articles)

    def __iter__(self) -> Iterator[Article]:
        return iter(list(self._articles.values()))
