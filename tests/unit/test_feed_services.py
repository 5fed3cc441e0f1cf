"""Unit tests for feed services.

Tests for feed fetching, feed parsing, and item normalization.
"""

import pytest
import httpx
from unittest.mock import AsyncMock, patch, MagicMock
from datetime import datetime

from feed_sync.errors import FetchError
from feed_sync.services.feed_source import (
    FeedItem,
    FeedPayload,
    HttpFeedSource,
    _parse_date,
    parse_payload,
)
from feed_sync.services.normalizer import normalize_item, normalize_payload, strip_markup


# Mark all tests as async
pytestmark = pytest.mark.anyio


RSS_FEED = """<?xml version="1.0"?>
<rss version="2.0">
    <channel>
        <title>Test Blog</title>
        <description>All the tests</description>
        <item>
            <title>Post 1</title>
            <link>https://example.com/post1</link>
            <description>&lt;p&gt;First &amp;amp; best&lt;/p&gt;</description>
            <author>alice@example.com (Alice)</author>
            <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
        </item>
        <item>
            <title>Post 2</title>
            <link>https://example.com/post2</link>
        </item>
    </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
    <title>Atom Blog</title>
    <subtitle>Atom subtitle</subtitle>
    <entry>
        <title>Atom Post</title>
        <link rel="related" href="https://example.com/related"/>
        <link rel="alternate" href="https://example.com/atom-post"/>
        <author><name>Bob</name></author>
        <updated>2024-01-15T10:30:00Z</updated>
        <summary>Atom summary</summary>
    </entry>
</feed>
"""


def mock_client_returning(response):
    """Build a patched httpx.AsyncClient instance whose get returns response."""
    mock_instance = AsyncMock()
    mock_instance.get = AsyncMock(return_value=response)
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=None)
    return mock_instance


class TestParsePayload:
    """Tests for RSS/Atom parsing."""

    def test_parse_rss(self):
        payload = parse_payload(RSS_FEED)

        assert payload.title == "Test Blog"
        assert payload.subtitle == "All the tests"
        assert [item.title for item in payload.items] == ["Post 1", "Post 2"]
        assert payload.items[0].link == "https://example.com/post1"
        assert payload.items[0].published_date is not None
        assert payload.items[0].published_date.year == 2024

    def test_parse_atom_puts_alternate_links_first(self):
        payload = parse_payload(ATOM_FEED)

        item = payload.items[0]
        assert payload.title == "Atom Blog"
        assert payload.subtitle == "Atom subtitle"
        assert item.links[0] == "https://example.com/atom-post"
        assert "https://example.com/related" in item.links
        assert item.authors == ["Bob"]
        assert item.summary == "Atom summary"

    def test_parse_garbage_raises(self):
        with pytest.raises(FetchError):
            parse_payload("<html><body>not a feed</body></html>")

    def test_parse_empty_channel_with_title(self):
        payload = parse_payload(
            '<?xml version="1.0"?><rss version="2.0"><channel><title>Quiet</title></channel></rss>'
        )
        assert payload.title == "Quiet"
        assert payload.items == []


class TestHttpFeedSource:
    """Tests for the httpx-backed source."""

    async def test_fetch_success(self):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.text = RSS_FEED
        mock_response.raise_for_status = MagicMock()

        with patch("feed_sync.services.feed_source.httpx.AsyncClient") as mock_client:
            mock_instance = mock_client_returning(mock_response)
            mock_client.return_value = mock_instance

            payload = await HttpFeedSource(user_agent="TestAgent/1.0").fetch("https://example.com/feed")

            assert payload.title == "Test Blog"
            assert len(payload.items) == 2
            mock_instance.get.assert_awaited_once_with("https://example.com/feed")
            assert mock_client.call_args.kwargs["headers"] == {"User-Agent": "TestAgent/1.0"}

    async def test_fetch_http_error_raises_fetch_error(self):
        request = httpx.Request("GET", "https://example.com/feed")
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError(
                "Not Found", request=request, response=httpx.Response(404, request=request)
            )
        )

        with patch("feed_sync.services.feed_source.httpx.AsyncClient") as mock_client:
            mock_client.return_value = mock_client_returning(mock_response)

            with pytest.raises(FetchError, match="Failed to fetch feed"):
                await HttpFeedSource().fetch("https://example.com/feed")

    async def test_fetch_connection_error_raises_fetch_error(self):
        with patch("feed_sync.services.feed_source.httpx.AsyncClient") as mock_client:
            mock_instance = mock_client_returning(None)
            mock_instance.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_client.return_value = mock_instance

            with pytest.raises(FetchError):
                await HttpFeedSource().fetch("https://example.com/feed")


class TestParseDate:
    """Tests for date parsing helper."""

    def test_parse_rfc2822_date(self):
        result = _parse_date({"published": "Mon, 01 Jan 2024 12:00:00 GMT"})

        assert result is not None
        assert (result.year, result.month, result.day) == (2024, 1, 1)

    def test_parse_iso8601_date(self):
        result = _parse_date({"updated": "2024-01-15T10:30:00Z"})

        assert result is not None
        assert (result.month, result.day, result.hour) == (1, 15, 10)

    def test_parse_time_struct(self):
        result = _parse_date({"published_parsed": (2024, 2, 3, 4, 5, 6, 0, 0, 0)})

        assert result == datetime(2024, 2, 3, 4, 5, 6)

    def test_parse_no_date(self):
        assert _parse_date({"title": "No date"}) is None


class TestNormalizer:
    """Tests for turning feed items into articles."""

    def test_strip_markup(self):
        assert strip_markup("<p>Hello <b>world</b> &amp; friends</p>") == "Hello world & friends"
        assert strip_markup("plain text") == "plain text"
        assert strip_markup(None) == ""

    def test_first_non_blank_author_wins(self):
        article = normalize_item(
            FeedItem(title="T", link="https://example.com/a", authors=["", "  ", " Carol ", "Dan"])
        )
        assert article.author == "Carol"

    def test_no_authors(self):
        article = normalize_item(FeedItem(title="T", link="https://example.com/a"))
        assert article.author is None

    def test_falls_back_to_first_link(self):
        article = normalize_item(
            FeedItem(title="T", links=["https://example.com/alt", "https://example.com/other"])
        )
        assert article.link == "https://example.com/alt"

    def test_item_without_link_is_dropped(self):
        assert normalize_item(FeedItem(title="No link")) is None

    def test_normalized_article_is_not_starred(self):
        article = normalize_item(FeedItem(title=" T ", link="https://example.com/a", summary="<i>s</i>"))
        assert article.title == "T"
        assert article.summary == "s"
        assert not article.starred

    def test_normalize_payload_keeps_order_and_skips_linkless(self):
        payload = FeedPayload(
            title="Feed",
            items=[
                FeedItem(title="b", link="https://example.com/b"),
                FeedItem(title="none"),
                FeedItem(title="a", link="https://example.com/a"),
            ],
        )

        assert [a.title for a in normalize_payload(payload)] == ["b", "a"]
