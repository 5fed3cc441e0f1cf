"""Feed refresh service.

This module runs the retrying fetch-and-merge protocol for one feed. Each
refresh takes a new epoch on the feed; a run whose epoch has been superseded
never mutates the feed, even if its fetch completes later.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from feed_sync.errors import ErrorKind, FetchError
from feed_sync.models.schemas import Article, Feed, RefreshOutcome, RefreshStatus
from feed_sync.services.favorites import FavoritesIndex
from feed_sync.services.feed_source import FeedPayload, FeedSource
from feed_sync.services.normalizer import normalize_payload

logger = logging.getLogger(__name__)

INVALID_FEED_MESSAGE = "Hmm... this does not look like a valid feed URL."
REFRESH_FAILED_MESSAGE = "Could not refresh; showing previously loaded articles."

DEFAULT_MAX_ATTEMPTS = 5


class _Cancelled(Exception):
    """Raised inside a run once it has been cancelled or superseded."""


class RefreshCoordinator:
    """Fetches feeds and merges their articles, one epoch at a time."""

    def __init__(
        self,
        source: FeedSource,
        favorites: FavoritesIndex,
        write_lock: Optional[asyncio.Lock] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        fetch_timeout: Optional[float] = 30.0,
        retry_delay: float = 0.0,
    ):
        """Create a coordinator.

        Args:
            source: Feed source used for every fetch
            favorites: Shared favorites index consulted while merging
            write_lock: Lock serializing favorites and persistence mutations;
                shared with the collection manager
            max_attempts: Fetch attempts per refresh before giving up
            fetch_timeout: Seconds allowed per attempt (None for no limit)
            retry_delay: Seconds to wait between failed attempts
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.source = source
        self.favorites = favorites
        self.write_lock = write_lock or asyncio.Lock()
        self.max_attempts = max_attempts
        self.fetch_timeout = fetch_timeout
        self.retry_delay = retry_delay

    async def refresh(self, feed: Feed, cancel: Optional[asyncio.Event] = None) -> RefreshOutcome:
        """Refresh a feed.

        Issuing a refresh supersedes any earlier run on the same feed.

        Args:
            feed: Feed to refresh
            cancel: Optional external cancel signal for this run

        Returns:
            RefreshOutcome describing how the run ended
        """
        if feed.is_favorites:
            return RefreshOutcome(RefreshStatus.SUCCESS)
        if not feed.has_http_link:
            logger.info(f"Not refreshing {feed.link!r}: scheme is not http or https")
            return RefreshOutcome(RefreshStatus.SUCCESS, ErrorKind.INVALID_URL_SCHEME)

        epoch, superseded = feed.begin_refresh()
        signals = [superseded] if cancel is None else [superseded, cancel]
        prior = (feed.status, feed.error_message, feed.error_kind)
        feed.mark_loading()
        logger.debug(f"Refreshing {feed.link} (epoch {epoch})")

        try:
            payload = await self._fetch_with_retries(feed, epoch, signals)
            return await self._commit(feed, epoch, payload)
        except _Cancelled:
            if feed.is_current(epoch):
                feed.restore_state(*prior)
            logger.debug(f"Refresh of {feed.link} (epoch {epoch}) cancelled")
            return RefreshOutcome(RefreshStatus.CANCELLED, ErrorKind.CANCELLED)
        except asyncio.CancelledError:
            if feed.is_current(epoch) and feed.is_loading:
                feed.restore_state(*prior)
            raise

    async def _commit(self, feed: Feed, epoch: int, payload: Optional[FeedPayload]) -> RefreshOutcome:
        """Apply the run's result under the write lock if its epoch is still current."""
        async with self.write_lock:
            if not feed.is_current(epoch):
                logger.debug(f"Discarding stale result for {feed.link} (epoch {epoch})")
                return RefreshOutcome(RefreshStatus.CANCELLED, ErrorKind.CANCELLED)

            if payload is None:
                message = INVALID_FEED_MESSAGE if feed.is_empty else REFRESH_FAILED_MESSAGE
                feed.mark_error(message, ErrorKind.TRANSIENT_FETCH_FAILURE)
                logger.warning(f"Giving up on {feed.link} after {self.max_attempts} attempts")
                return RefreshOutcome(RefreshStatus.FAILED, ErrorKind.TRANSIENT_FETCH_FAILURE)

            added = self._merge(feed, payload)

        logger.info(f"Refreshed {feed.name or feed.link}: {len(added)} new articles")
        return RefreshOutcome(RefreshStatus.SUCCESS)

    async def _fetch_with_retries(
        self, feed: Feed, epoch: int, signals: List[asyncio.Event]
    ) -> Optional[FeedPayload]:
        """Try the fetch up to max_attempts times.

        Returns:
            The first successful payload, or None once attempts are exhausted

        Raises:
            _Cancelled: As soon as the run is cancelled or superseded
        """
        for attempt in range(1, self.max_attempts + 1):
            self._check_cancelled(feed, epoch, signals)
            try:
                return await self._fetch_once(feed.link, signals)
            except _Cancelled:
                raise
            except Exception as e:
                logger.info(f"Attempt {attempt}/{self.max_attempts} for {feed.link} failed: {e}")

            if attempt < self.max_attempts and self.retry_delay > 0:
                await self._sleep(self.retry_delay, signals)

        self._check_cancelled(feed, epoch, signals)
        return None

    async def _fetch_once(self, link: str, signals: List[asyncio.Event]) -> FeedPayload:
        """Run one fetch, abandoning it on timeout or cancellation."""
        fetch = asyncio.ensure_future(self.source.fetch(link))
        waiters = [asyncio.ensure_future(signal.wait()) for signal in signals]
        try:
            done, _ = await asyncio.wait(
                [fetch, *waiters],
                timeout=self.fetch_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if fetch in done:
                return fetch.result()
            if any(signal.is_set() for signal in signals):
                raise _Cancelled()
            raise FetchError(f"Timed out after {self.fetch_timeout}s")
        finally:
            for waiter in waiters:
                waiter.cancel()
            if not fetch.done():
                fetch.cancel()

    async def _sleep(self, delay: float, signals: List[asyncio.Event]) -> None:
        waiters = [asyncio.ensure_future(signal.wait()) for signal in signals]
        try:
            await asyncio.wait(waiters, timeout=delay, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    @staticmethod
    def _check_cancelled(feed: Feed, epoch: int, signals: Iterable[asyncio.Event]) -> None:
        if not feed.is_current(epoch) or any(signal.is_set() for signal in signals):
            raise _Cancelled()

    def _merge(self, feed: Feed, payload: FeedPayload) -> List[Article]:
        """Apply a successful payload to the feed. Caller holds write_lock."""
        articles = []
        for article in normalize_payload(payload):
            canonical = self.favorites.lookup(article.identity)
            articles.append(canonical if canonical is not None else article)

        added = feed.append_articles(articles)

        if not feed.name:
            feed.name = payload.title
        if not feed.description:
            feed.description = payload.subtitle or ""
        feed.mark_ready(datetime.now())
        return added
