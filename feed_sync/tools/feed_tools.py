"""Feed sync MCP tools.

This module provides MCP tools that drive a FeedCollectionManager: managing
the feed list, refreshing feeds, and starring articles.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import Context

from feed_sync.models.identity import identity_of
from feed_sync.models.schemas import Article, Feed
from feed_sync.services.collection import ALREADY_ADDED_MESSAGE, FeedCollectionManager

logger = logging.getLogger(__name__)


def feed_to_dict(feed: Feed) -> Dict[str, Any]:
    return {
        "name": feed.name,
        "description": feed.description,
        "link": feed.link,
        "is_favorites": feed.is_favorites,
        "status": feed.status.value,
        "article_count": len(feed),
        "last_sync_time": feed.last_sync_time.isoformat() if feed.last_sync_time else None,
        "error_message": feed.error_message or feed.placeholder_message,
    }


def article_to_dict(article: Article) -> Dict[str, Any]:
    return {
        "title": article.title,
        "link": article.link,
        "summary": article.summary,
        "author": article.author,
        "published_date": article.published_date.isoformat() if article.published_date else None,
        "starred": article.starred,
    }


def build_feed_tools(manager: FeedCollectionManager) -> List[Callable]:
    """Create the MCP tool functions bound to a manager.

    Args:
        manager: The collection manager the tools operate on

    Returns:
        List of async tool functions, ready for registration
    """

    def find_article(link: str, feed_name: str = "") -> Optional[Article]:
        identity = identity_of(link)
        if identity is None:
            return None
        canonical = manager.favorites_index.lookup(identity)
        if canonical is not None:
            return canonical
        feeds = manager.feeds_with_favorites
        if feed_name:
            feed = manager.find_feed(feed_name)
            feeds = [feed] if feed is not None else []
        for feed in feeds:
            article = feed.find_article(identity)
            if article is not None:
                return article
        return None

    async def list_feeds(ctx: Context = None) -> Dict[str, Any]:
        """List all feeds, favorites first, with their refresh status.

        Args:
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - count: number of feeds including favorites
            - current_feed: name of the selected feed
            - feeds: list of feed objects with name, link, status, article_count,
              last_sync_time, error_message
        """
        logger.info("list_feeds called")
        feeds = manager.feeds_with_favorites
        return {
            "success": True,
            "count": len(feeds),
            "current_feed": manager.current_feed.name if manager.current_feed else None,
            "feeds": [feed_to_dict(f) for f in feeds],
        }

    async def add_feed(url: str, name: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Subscribe to an RSS/Atom feed.

        The feed is fetched once before it is added, so URLs that do not serve
        a feed are rejected. Feeds whose host and path match an existing feed
        are rejected as duplicates.

        Args:
            url: Feed URL (must begin with http:// or https://)
            name: Display name (empty string to use the feed's own title)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - feed: feed object if added
            - error: string if success is False
        """
        logger.info(f"add_feed called: url={url}, name={name}")

        candidate = manager.create_candidate(url, name)
        if candidate.is_in_error:
            return {"success": False, "error": candidate.error_message}
        if manager.is_duplicate(candidate):
            return {"success": False, "error": ALREADY_ADDED_MESSAGE}

        await manager.refresh_feed(candidate)
        if candidate.is_in_error:
            return {"success": False, "error": candidate.error_message}

        if not await manager.add_feed(candidate):
            return {"success": False, "error": candidate.error_message}

        return {"success": True, "feed": feed_to_dict(candidate)}

    async def remove_feed(name: str, ctx: Context = None) -> Dict[str, Any]:
        """Unsubscribe from a feed.

        Args:
            name: Feed name or URL
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - message: confirmation string if successful
            - error: string if the feed was not found
        """
        logger.info(f"remove_feed called: name={name}")

        feed = manager.find_feed(name)
        if feed is None:
            return {"success": False, "error": f"Feed '{name}' not found"}
        try:
            await manager.remove_feed(feed)
        except ValueError as e:
            return {"success": False, "error": str(e)}

        return {"success": True, "message": f"Removed feed '{feed.name or feed.link}'"}

    async def rename_feed(name: str, new_name: str, ctx: Context = None) -> Dict[str, Any]:
        """Rename a feed.

        Args:
            name: Current feed name or URL
            new_name: New display name
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with success flag and the updated feed, or an error
        """
        logger.info(f"rename_feed called: name={name}, new_name={new_name}")

        feed = manager.find_feed(name)
        if feed is None:
            return {"success": False, "error": f"Feed '{name}' not found"}
        try:
            await manager.rename_feed(feed, new_name)
        except ValueError as e:
            return {"success": False, "error": str(e)}

        return {"success": True, "feed": feed_to_dict(feed)}

    async def reorder_feeds(names: List[str], ctx: Context = None) -> Dict[str, Any]:
        """Set the order of the feeds. Favorites always stays first.

        Args:
            names: Every feed name (or URL) exactly once, in the new order
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with success flag and the new order, or an error
        """
        logger.info(f"reorder_feeds called: names={names}")

        feeds = []
        for name in names:
            feed = manager.find_feed(name)
            if feed is None:
                return {"success": False, "error": f"Feed '{name}' not found"}
            feeds.append(feed)
        try:
            await manager.reorder(feeds)
        except ValueError as e:
            return {"success": False, "error": str(e)}

        return {"success": True, "order": [f.name or f.link for f in manager.feeds]}

    async def refresh_feed(name: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Fetch new articles for one feed, or for every feed.

        Args:
            name: Feed name or URL (empty string refreshes all feeds)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - results: list of per-feed results with name, status, new state
        """
        logger.info(f"refresh_feed called: name={name}")

        if name:
            feed = manager.find_feed(name)
            if feed is None:
                return {"success": False, "error": f"Feed '{name}' not found"}
            feeds = [feed]
            outcomes = [await manager.refresh_feed(feed)]
        else:
            feeds = manager.feeds
            outcomes = await manager.refresh_all()

        return {
            "success": True,
            "results": [
                {
                    "feed": feed_to_dict(feed),
                    "outcome": outcome.status.value,
                    "error_kind": outcome.error_kind.value if outcome.error_kind else None,
                }
                for feed, outcome in zip(feeds, outcomes)
            ],
        }

    async def select_feed(name: str, ctx: Context = None) -> Dict[str, Any]:
        """Make a feed the current feed.

        Args:
            name: Feed name or URL
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with the selected feed and current article
        """
        logger.info(f"select_feed called: name={name}")

        feed = manager.find_feed(name)
        if feed is None:
            return {"success": False, "error": f"Feed '{name}' not found"}
        manager.select_feed(feed)

        article = manager.current_article
        return {
            "success": True,
            "feed": feed_to_dict(feed),
            "current_article": article_to_dict(article) if article else None,
        }

    async def list_articles(feed_name: str = "", limit: int = 50, ctx: Context = None) -> Dict[str, Any]:
        """List the articles of a feed.

        Args:
            feed_name: Feed name or URL (empty string for the current feed)
            limit: Maximum number of articles to return (default: 50)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with:
            - success: bool
            - feed: feed object
            - count: number of articles returned
            - articles: list of article objects with title, link, summary,
              author, published_date, starred
        """
        logger.info(f"list_articles called: feed_name={feed_name}, limit={limit}")

        feed = manager.find_feed(feed_name) if feed_name else manager.current_feed
        if feed is None:
            return {"success": False, "error": f"Feed '{feed_name}' not found"}

        articles = feed.articles[:limit] if limit > 0 else feed.articles
        return {
            "success": True,
            "feed": feed_to_dict(feed),
            "count": len(articles),
            "articles": [article_to_dict(a) for a in articles],
        }

    async def star_article(link: str, feed_name: str = "", ctx: Context = None) -> Dict[str, Any]:
        """Star an article so it appears in Favorites.

        Args:
            link: Article URL
            feed_name: Feed to look the article up in (empty string searches all)
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with success flag and the starred article, or an error
        """
        logger.info(f"star_article called: link={link}")

        article = find_article(link, feed_name)
        if article is None:
            return {"success": False, "error": f"Article '{link}' not found"}

        canonical = await manager.set_starred(article, True)
        return {"success": True, "article": article_to_dict(canonical)}

    async def unstar_article(link: str, ctx: Context = None) -> Dict[str, Any]:
        """Remove an article from Favorites.

        Args:
            link: Article URL
            ctx: MCP Context object (injected automatically)

        Returns:
            Dictionary with success flag and the unstarred article, or an error
        """
        logger.info(f"unstar_article called: link={link}")

        article = find_article(link)
        if article is None or not article.starred:
            return {"success": False, "error": f"Article '{link}' is not starred"}

        canonical = await manager.set_starred(article, False)
        return {"success": True, "article": article_to_dict(canonical)}

    return [
        list_feeds,
        add_feed,
        remove_feed,
        rename_feed,
        reorder_feeds,
        refresh_feed,
        select_feed,
        list_articles,
        star_article,
        unstar_article,
    ]
