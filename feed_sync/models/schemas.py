"""Data models for feed_sync.

This module defines articles, feeds (including the per-feed refresh state
machine), persisted snapshots and refresh outcomes.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from feed_sync.errors import ErrorKind
from feed_sync.models.identity import ArticleIdentity

FAVORITES_LINK = "http://localhost"
FAVORITES_NAME = "Favorites"
FAVORITES_DESCRIPTION = "Articles that you've starred"

NOT_HTTP_MESSAGE = "Sorry. The URL must begin with http:// or https://"
INVALID_URL_MESSAGE = "Sorry. That is not a valid URL."
NO_STARRED_ARTICLES_MESSAGE = "There are no starred articles."


class FeedStatus(str, Enum):
    """Refresh state of a feed."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class RefreshStatus(str, Enum):
    """Result of a single refresh run."""

    SUCCESS = "success"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshOutcome:
    """What a refresh run reports back to its caller."""

    status: RefreshStatus
    error_kind: Optional[ErrorKind] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RefreshStatus.SUCCESS


@dataclass(eq=False)
class Article:
    """Represents an article from a feed.

    Articles compare by reference. Use ``identity`` to match the same logical
    article across feeds.
    """

    title: str
    link: str
    summary: str = ""
    author: Optional[str] = None
    published_date: Optional[datetime] = None
    starred: bool = False

    @property
    def identity(self) -> ArticleIdentity:
        return ArticleIdentity.from_link(self.link)


def validate_feed_link(text: str) -> Optional[str]:
    """Check a user-entered feed link.

    Args:
        text: Raw link text

    Returns:
        An error message if the link is unusable, None if it is valid
    """
    value = text.strip()
    if not value.startswith(("http://", "https://")):
        return NOT_HTTP_MESSAGE
    try:
        parts = urlsplit(value)
    except ValueError:
        return INVALID_URL_MESSAGE
    if not parts.hostname or " " in value:
        return INVALID_URL_MESSAGE
    return None


FirstArticleWatcher = Callable[["Feed"], None]


@dataclass(eq=False)
class Feed:
    """A subscribed feed and its mutable refresh state.

    Status moves Idle -> Loading -> Ready/Error, and Ready/Error -> Loading on
    the next refresh. Every refresh takes a new epoch; only the run holding the
    current epoch may commit results.
    """

    link: str
    name: str = ""
    description: str = ""
    is_favorites: bool = False
    status: FeedStatus = FeedStatus.IDLE
    last_sync_time: Optional[datetime] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    refresh_epoch: int = 0
    _articles: List[Article] = field(default_factory=list, init=False, repr=False)
    _index: Dict[ArticleIdentity, Article] = field(default_factory=dict, init=False, repr=False)
    _refresh_cancel: Optional[asyncio.Event] = field(default=None, init=False, repr=False)
    _watchers: List[FirstArticleWatcher] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def favorites(cls) -> "Feed":
        """Build the empty favorites sentinel feed."""
        return cls(
            link=FAVORITES_LINK,
            name=FAVORITES_NAME,
            description=FAVORITES_DESCRIPTION,
            is_favorites=True,
        )

    @property
    def identity(self) -> ArticleIdentity:
        return ArticleIdentity.from_link(self.link)

    @property
    def has_http_link(self) -> bool:
        scheme = urlsplit(self.link.strip()).scheme.lower()
        return scheme in ("http", "https")

    # Articles

    @property
    def articles(self) -> List[Article]:
        return list(self._articles)

    def __len__(self) -> int:
        return len(self._articles)

    def contains(self, identity: ArticleIdentity) -> bool:
        return identity in self._index

    def find_article(self, identity: ArticleIdentity) -> Optional[Article]:
        return self._index.get(identity)

    def append_articles(self, articles: Iterable[Article]) -> List[Article]:
        """Append articles whose identity is not already present.

        Existing articles keep their position and instance.

        Returns:
            The articles that were actually added, in order
        """
        added = []
        for article in articles:
            identity = article.identity
            if identity in self._index:
                continue
            self._index[identity] = article
            self._articles.append(article)
            added.append(article)

        if added:
            self._notify_watchers()
        return added

    def insert_article(self, index: int, article: Article) -> bool:
        """Insert an article at a position unless its identity is present."""
        identity = article.identity
        if identity in self._index:
            return False
        self._index[identity] = article
        self._articles.insert(index, article)
        self._notify_watchers()
        return True

    def remove_article(self, identity: ArticleIdentity) -> Optional[Article]:
        article = self._index.pop(identity, None)
        if article is not None:
            self._articles.remove(article)
        return article

    def replace_article(self, article: Article) -> bool:
        """Swap the instance sharing this article's identity for ``article``.

        Returns:
            True if an instance with that identity was present
        """
        identity = article.identity
        existing = self._index.get(identity)
        if existing is None:
            return False
        if existing is not article:
            self._articles[self._articles.index(existing)] = article
            self._index[identity] = article
        return True

    def watch_first_article(self, watcher: FirstArticleWatcher) -> None:
        """Call ``watcher`` once, on the next article insertion."""
        self._watchers.append(watcher)

    def unwatch_first_article(self, watcher: FirstArticleWatcher) -> None:
        if watcher in self._watchers:
            self._watchers.remove(watcher)

    def _notify_watchers(self) -> None:
        watchers, self._watchers = self._watchers, []
        for watcher in watchers:
            watcher(self)

    # Refresh epochs

    def begin_refresh(self) -> Tuple[int, asyncio.Event]:
        """Start a new refresh generation, cancelling the previous one.

        Returns:
            The new epoch and the cancel event belonging to it
        """
        if self._refresh_cancel is not None:
            self._refresh_cancel.set()
        self.refresh_epoch += 1
        self._refresh_cancel = asyncio.Event()
        return self.refresh_epoch, self._refresh_cancel

    def is_current(self, epoch: int) -> bool:
        return self.refresh_epoch == epoch

    def cancel_refresh(self) -> None:
        """Void any in-flight refresh without starting a new one."""
        if self._refresh_cancel is not None:
            self._refresh_cancel.set()
        self.refresh_epoch += 1
        self._refresh_cancel = None

    # State transitions

    def mark_loading(self) -> None:
        self.status = FeedStatus.LOADING

    def mark_ready(self, synced_at: datetime) -> None:
        self.status = FeedStatus.READY
        self.last_sync_time = synced_at
        self.error_message = None
        self.error_kind = None

    def mark_error(self, message: str, kind: ErrorKind) -> None:
        self.status = FeedStatus.ERROR
        self.error_message = message
        self.error_kind = kind

    def restore_state(
        self,
        status: FeedStatus,
        error_message: Optional[str],
        error_kind: Optional[ErrorKind],
    ) -> None:
        if status is FeedStatus.LOADING:
            status = FeedStatus.READY if self._articles else FeedStatus.IDLE
        self.status = status
        self.error_message = error_message
        self.error_kind = error_kind

    # Derived values

    @property
    def is_empty(self) -> bool:
        return not self._articles

    @property
    def is_loading(self) -> bool:
        return self.status is FeedStatus.LOADING

    @property
    def is_in_error(self) -> bool:
        return self.status is FeedStatus.ERROR

    @property
    def is_in_error_and_empty(self) -> bool:
        return self.is_in_error and self.is_empty

    @property
    def is_in_error_and_not_empty(self) -> bool:
        return self.is_in_error and not self.is_empty

    @property
    def is_loading_and_not_empty(self) -> bool:
        return self.is_loading and not self.is_empty

    @property
    def is_not_favorites_or_in_error(self) -> bool:
        return not self.is_favorites and not self.is_in_error

    @property
    def placeholder_message(self) -> Optional[str]:
        if self.is_favorites and self.is_empty:
            return NO_STARRED_ARTICLES_MESSAGE
        return None

    @property
    def feed_down_message(self) -> str:
        if self.last_sync_time is None:
            return "It looks like this feed is down. It has never synced."
        if self.last_sync_time.date() == datetime.now().date():
            last_sync = self.last_sync_time.strftime("%H:%M")
        else:
            last_sync = self.last_sync_time.strftime("%Y-%m-%d %H:%M")
        return f"It looks like this feed is down. Last synced {last_sync}."


@dataclass
class FeedMetadata:
    """Name, description and link of a persisted feed."""

    name: str
    description: str
    link: str


@dataclass
class FavoritesSnapshot:
    """Persisted form of the favorites feed."""

    feed: FeedMetadata
    articles: List[Article] = field(default_factory=list)


@dataclass
class FeedListSnapshot:
    """Persisted ordered (name, url) pairs of the non-favorites feeds."""

    feeds: List[Tuple[str, str]] = field(default_factory=list)
