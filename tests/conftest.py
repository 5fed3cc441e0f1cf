"""Shared fixtures for feed_sync tests."""

import asyncio
import json
from typing import Dict, List, Optional, Union

import pytest

from feed_sync.errors import FetchError
from feed_sync.services.collection import FeedCollectionManager
from feed_sync.services.favorites import FavoritesIndex
from feed_sync.services.feed_source import FeedItem, FeedPayload
from feed_sync.services.refresh import RefreshCoordinator
from feed_sync.storage.database import SqliteByteStore
from feed_sync.storage.persistence import PersistenceGateway


@pytest.fixture
def anyio_backend():
    return "asyncio"


class Gate:
    """A scripted fetch step that blocks until released."""

    def __init__(self, result: Union[FeedPayload, Exception, None] = None):
        self.result = result
        self.started = asyncio.Event()
        self.released = asyncio.Event()

    def release(self) -> None:
        self.released.set()


Step = Union[FeedPayload, Exception, Gate]


class ScriptedFeedSource:
    """FeedSource that replays scripted responses per URL."""

    def __init__(self):
        self.scripts: Dict[str, List[Step]] = {}
        self.static: Dict[str, FeedPayload] = {}
        self.calls: List[str] = []

    def script(self, uri: str, *steps: Step) -> None:
        self.scripts.setdefault(uri, []).extend(steps)

    def serve(self, uri: str, payload: FeedPayload) -> None:
        self.static[uri] = payload

    async def fetch(self, uri: str) -> FeedPayload:
        self.calls.append(uri)
        steps = self.scripts.get(uri)
        if steps:
            step = steps.pop(0)
        elif uri in self.static:
            step = self.static[uri]
        else:
            raise FetchError(f"No response scripted for {uri}")

        if isinstance(step, Gate):
            step.started.set()
            await step.released.wait()
            step = step.result
        if isinstance(step, Exception):
            raise step
        return step


def make_payload(*links: str, title: str = "Example Feed", subtitle: Optional[str] = "Example subtitle") -> FeedPayload:
    return FeedPayload(
        title=title,
        subtitle=subtitle,
        items=[
            FeedItem(
                title=f"Article {i}",
                summary=f"<p>Summary &amp; body {i}</p>",
                link=link,
                authors=["Author"],
            )
            for i, link in enumerate(links)
        ],
    )


def fail() -> FetchError:
    return FetchError("boom")


@pytest.fixture
def source() -> ScriptedFeedSource:
    return ScriptedFeedSource()


@pytest.fixture
def favorites() -> FavoritesIndex:
    return FavoritesIndex()


@pytest.fixture
def coordinator(source, favorites) -> RefreshCoordinator:
    return RefreshCoordinator(
        source,
        favorites,
        write_lock=asyncio.Lock(),
        max_attempts=5,
        fetch_timeout=2.0,
        retry_delay=0,
    )


@pytest.fixture
async def store():
    """In-memory snapshot store."""
    store = SqliteByteStore(":memory:")
    yield store
    await store.close()


@pytest.fixture
def default_feeds_path(tmp_path):
    path = tmp_path / "default_feeds.json"
    path.write_text(json.dumps({
        "version": 1,
        "feeds": [
            {"name": "Alpha", "url": "https://alpha.example.com/feed"},
            {"name": "Beta", "url": "https://beta.example.com/feed"},
            {"name": "Gamma", "url": "https://gamma.example.com/feed"},
        ],
    }))
    return path


@pytest.fixture
def persistence(store, default_feeds_path) -> PersistenceGateway:
    return PersistenceGateway(store, default_feeds_path=default_feeds_path)


@pytest.fixture
async def manager(persistence, coordinator):
    """Manager over the in-memory store; not yet initialized."""
    manager = FeedCollectionManager(persistence, coordinator)
    yield manager
    await manager.close()
