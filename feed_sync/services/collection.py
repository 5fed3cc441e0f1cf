"""Feed collection service.

FeedCollectionManager owns the ordered feed list (with the favorites feed
logically first), the current selection, and starring. Every mutation that
must be persisted saves its snapshot explicitly before returning.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Set, Tuple

from feed_sync.errors import ErrorKind
from feed_sync.models.identity import identity_of
from feed_sync.models.schemas import (
    FAVORITES_LINK,
    INVALID_URL_MESSAGE,
    Article,
    FavoritesSnapshot,
    Feed,
    FeedListSnapshot,
    FeedMetadata,
    FeedStatus,
    FirstArticleWatcher,
    RefreshOutcome,
    validate_feed_link,
)
from feed_sync.services.refresh import RefreshCoordinator
from feed_sync.storage.persistence import PersistenceGateway

logger = logging.getLogger(__name__)

ALREADY_ADDED_MESSAGE = "This feed has already been added."


class FeedCollectionManager:
    """Ordered set of feeds plus the favorites sentinel and current selection."""

    def __init__(self, persistence: PersistenceGateway, coordinator: RefreshCoordinator):
        self.persistence = persistence
        self.coordinator = coordinator
        self.favorites_index = coordinator.favorites
        self._write_lock = coordinator.write_lock
        self.favorites_feed: Feed = Feed.favorites()
        self._feeds: List[Feed] = []
        self.current_feed: Optional[Feed] = None
        self.current_article: Optional[Article] = None
        self._pending_selection: Optional[Tuple[Feed, FirstArticleWatcher]] = None
        self._tasks: Set[asyncio.Task] = set()

    # Startup

    async def initialize(self) -> None:
        """Load persisted state, start refreshing every feed and pick a current feed."""
        snapshot = await self.persistence.try_load_favorites()
        if snapshot is None:
            logger.info("No favorites snapshot found, creating the favorites feed")
            self.favorites_feed = Feed.favorites()
            await self._save_favorites()
        else:
            self.favorites_feed = Feed(
                link=snapshot.feed.link or FAVORITES_LINK,
                name=snapshot.feed.name,
                description=snapshot.feed.description,
                is_favorites=True,
            )
            async with self._write_lock:
                canonical = [self.favorites_index.add(a) for a in snapshot.articles]
                self.favorites_feed.append_articles(canonical)
            logger.info(f"Loaded {len(self.favorites_feed)} starred articles")

        feed_list = await self.persistence.try_load_feed_list()
        if feed_list is None:
            logger.info("No feed list snapshot found, using the default feed list")
            feed_list = self.persistence.load_default_feed_list()

        self._feeds = []
        for name, url in feed_list.feeds:
            feed = Feed(link=url, name=name)
            if self.is_duplicate(feed):
                logger.warning(f"Skipping duplicate feed in feed list: {url}")
                continue
            self._feeds.append(feed)

        for feed in self._feeds:
            self._schedule_refresh(feed)

        self.select_feed(self._feeds[0] if self._feeds else self.favorites_feed)
        logger.info(f"Initialized with {len(self._feeds)} feeds")

    # Derived values

    @property
    def feeds(self) -> List[Feed]:
        """Non-favorites feeds, in order."""
        return list(self._feeds)

    @property
    def feeds_with_favorites(self) -> List[Feed]:
        return [self.favorites_feed] + self._feeds

    @property
    def has_no_feeds(self) -> bool:
        return not self._feeds

    @property
    def is_current_feed_favorites(self) -> bool:
        return self.current_feed is self.favorites_feed

    def find_feed(self, key: str) -> Optional[Feed]:
        """Find a feed by name (case-insensitive) or by link identity."""
        wanted = key.strip()
        if not wanted:
            return None
        for feed in self.feeds_with_favorites:
            if feed.name.lower() == wanted.lower():
                return feed
        identity = identity_of(wanted)
        if identity is not None:
            for feed in self.feeds_with_favorites:
                if identity_of(feed.link) == identity:
                    return feed
        return None

    # Refreshing

    async def refresh_feed(self, feed: Feed, cancel: Optional[asyncio.Event] = None) -> RefreshOutcome:
        return await self.coordinator.refresh(feed, cancel)

    def refresh_current_feed(self) -> Optional[asyncio.Task]:
        if self.current_feed is None:
            return None
        return self._schedule_refresh(self.current_feed)

    async def refresh_all(self) -> List[RefreshOutcome]:
        """Refresh every feed concurrently and wait for all of them."""
        return list(await asyncio.gather(*(self.coordinator.refresh(f) for f in self._feeds)))

    async def wait_for_refreshes(self) -> None:
        """Wait until every background refresh has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule_refresh(self, feed: Feed) -> asyncio.Task:
        task = asyncio.create_task(self.coordinator.refresh(feed))
        self._tasks.add(task)
        task.add_done_callback(self._on_refresh_done)
        return task

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background refresh failed: {error}", exc_info=error)

    # Adding, removing, ordering

    def create_candidate(self, link_text: str, name: str = "") -> Feed:
        """Build a feed for a user-entered link, in Error if the link is unusable."""
        candidate = Feed(link=link_text.strip(), name=name.strip())
        error = validate_feed_link(link_text)
        if error is not None:
            candidate.mark_error(error, ErrorKind.INVALID_URL_SCHEME)
        return candidate

    async def add_feed(self, candidate: Feed) -> bool:
        """Append a candidate feed unless a feed with the same link identity exists.

        Args:
            candidate: Feed to add

        Returns:
            True if added; False if rejected (the candidate is put in Error)
        """
        if candidate.is_favorites:
            raise ValueError("The favorites feed cannot be added")

        if identity_of(candidate.link) is None:
            candidate.mark_error(INVALID_URL_MESSAGE, ErrorKind.INVALID_URL_SCHEME)
            return False

        if self.is_duplicate(candidate):
            candidate.mark_error(ALREADY_ADDED_MESSAGE, ErrorKind.DUPLICATE_FEED)
            logger.info(f"Rejected duplicate feed: {candidate.link}")
            return False

        self._feeds.append(candidate)
        await self._save_feed_list()
        logger.info(f"Added feed {candidate.name or candidate.link}")

        if candidate.status is FeedStatus.IDLE:
            self._schedule_refresh(candidate)
        return True

    async def remove_feed(self, feed: Feed) -> bool:
        return await self.remove_feeds([feed])

    async def remove_feeds(self, feeds: Iterable[Feed]) -> bool:
        """Remove feeds from the collection and persist the feed list.

        Returns:
            True if at least one feed was removed
        """
        feeds = list(feeds)
        if any(feed.is_favorites for feed in feeds):
            raise ValueError("The favorites feed cannot be removed")

        removed = False
        for feed in feeds:
            if feed in self._feeds:
                self._feeds.remove(feed)
                feed.cancel_refresh()
                removed = True
                logger.info(f"Removed feed {feed.name or feed.link}")

        if not removed:
            return False

        if self.current_feed is not None and self.current_feed not in self.feeds_with_favorites:
            self.select_feed(self._feeds[0] if self._feeds else self.favorites_feed)
        await self._save_feed_list()
        return True

    async def remove_bad_feed(self) -> Feed:
        """Remove the current feed and select its neighbour.

        Returns:
            The newly selected feed
        """
        feed = self.current_feed
        if feed is None or feed.is_favorites or feed not in self._feeds:
            raise ValueError("The current feed cannot be removed")

        index = self._feeds.index(feed)
        self._feeds.remove(feed)
        feed.cancel_refresh()

        if self._feeds:
            neighbour = self._feeds[index if len(self._feeds) > index else index - 1]
        else:
            neighbour = self.favorites_feed
        self.select_feed(neighbour)

        await self._save_feed_list()
        logger.info(f"Removed bad feed {feed.link}, selected {neighbour.name or neighbour.link}")
        return neighbour

    async def reorder(self, feeds: Iterable[Feed]) -> None:
        """Set a new order for the non-favorites feeds.

        Args:
            feeds: Every non-favorites feed exactly once, in the new order.
                The favorites feed may be included; it always stays first.
        """
        ordered = [f for f in feeds if not f.is_favorites]
        if len(ordered) != len(self._feeds) or {id(f) for f in ordered} != {id(f) for f in self._feeds}:
            raise ValueError("Reorder must list every feed exactly once")

        self._feeds = ordered
        await self._save_feed_list()

    async def rename_feed(self, feed: Feed, name: str) -> None:
        if feed.is_favorites:
            raise ValueError("The favorites feed cannot be renamed")
        if feed not in self._feeds:
            raise ValueError(f"Unknown feed: {feed.link}")
        if not name.strip():
            raise ValueError("Feed name cannot be empty")

        feed.name = name.strip()
        await self._save_feed_list()

    def is_duplicate(self, candidate: Feed) -> bool:
        """True if another feed in the collection has the same link identity."""
        identity = identity_of(candidate.link)
        if identity is None:
            return False
        return any(identity_of(f.link) == identity for f in self.feeds_with_favorites if f is not candidate)

    # Selection

    def select_feed(self, feed: Feed) -> None:
        """Make a feed current and select its first article, now or once one arrives."""
        if self._pending_selection is not None:
            pending_feed, watcher = self._pending_selection
            pending_feed.unwatch_first_article(watcher)
            self._pending_selection = None

        self.current_feed = feed
        if not feed.is_empty:
            self.current_article = feed.articles[0]
            return

        self.current_article = None

        def select_first(loaded: Feed) -> None:
            self._pending_selection = None
            if self.current_feed is loaded and not loaded.is_empty:
                self.current_article = loaded.articles[0]

        feed.watch_first_article(select_first)
        self._pending_selection = (feed, select_first)

    def select_article(self, article: Optional[Article]) -> None:
        self.current_article = article

    # Starring

    async def toggle_star(self, article: Article, feed_context: Optional[Feed] = None) -> bool:
        """Flip an article's starred state.

        Returns:
            The new starred state
        """
        starred = not article.starred
        await self.set_starred(article, starred)
        if feed_context is not None:
            logger.debug(f"Toggled star in {feed_context.name or feed_context.link}")
        return starred

    async def set_starred(self, article: Article, starred: bool) -> Article:
        """Star or unstar an article and persist the favorites feed.

        Returns:
            The canonical instance for the article's identity
        """
        identity = article.identity
        async with self._write_lock:
            if starred:
                canonical = self.favorites_index.add(article)
                article.starred = True
                for feed in self._feeds:
                    feed.replace_article(canonical)
                self.favorites_feed.insert_article(0, canonical)
                logger.info(f"Starred {canonical.title or canonical.link}")
            else:
                canonical = self.favorites_index.remove(identity) or article
                article.starred = False
                canonical.starred = False
                self.favorites_feed.remove_article(identity)
                for feed in self._feeds:
                    local = feed.find_article(identity)
                    if local is not None:
                        local.starred = False
                logger.info(f"Unstarred {canonical.title or canonical.link}")

            await self.persistence.save_favorites(self._favorites_snapshot())
        return canonical

    # Persistence

    def _favorites_snapshot(self) -> FavoritesSnapshot:
        return FavoritesSnapshot(
            feed=FeedMetadata(
                name=self.favorites_feed.name,
                description=self.favorites_feed.description,
                link=self.favorites_feed.link,
            ),
            articles=self.favorites_feed.articles,
        )

    async def _save_favorites(self) -> None:
        async with self._write_lock:
            await self.persistence.save_favorites(self._favorites_snapshot())

    async def _save_feed_list(self) -> None:
        snapshot = FeedListSnapshot(feeds=[(f.name, f.link) for f in self._feeds])
        async with self._write_lock:
            await self.persistence.save_feed_list(snapshot)

    # Shutdown

    async def close(self) -> None:
        """Cancel background refreshes and wait for them to stop."""
        for feed in self._feeds:
            feed.cancel_refresh()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
