"""feed_sync - MCP Server

This module wires the sync engine together (byte store, persistence, refresh
coordinator, collection manager) and exposes it as a FastMCP server with
multi-transport support (STDIO, SSE, and Streamable HTTP).
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from feed_sync.config import ServerConfig, get_config
from feed_sync.logging_config import setup_logging, logger
from feed_sync.services.collection import FeedCollectionManager
from feed_sync.services.favorites import FavoritesIndex
from feed_sync.services.feed_source import FeedSource, HttpFeedSource
from feed_sync.services.refresh import RefreshCoordinator
from feed_sync.storage.database import SqliteByteStore
from feed_sync.storage.persistence import PersistenceGateway
from feed_sync.tools.feed_tools import build_feed_tools


def build_manager(
    config: ServerConfig,
    store: SqliteByteStore,
    source: Optional[FeedSource] = None,
) -> FeedCollectionManager:
    """Assemble a FeedCollectionManager and its collaborators.

    Args:
        config: Server configuration
        store: Byte store holding snapshots
        source: Feed source (defaults to HttpFeedSource)

    Returns:
        A manager that still needs ``initialize()``
    """
    coordinator = RefreshCoordinator(
        source or HttpFeedSource(user_agent=config.user_agent, timeout=config.fetch_timeout),
        FavoritesIndex(),
        write_lock=asyncio.Lock(),
        max_attempts=config.max_attempts,
        fetch_timeout=config.fetch_timeout,
        retry_delay=config.retry_delay,
    )
    persistence = PersistenceGateway(store, default_feeds_path=config.default_feeds_path)
    return FeedCollectionManager(persistence, coordinator)


def create_mcp_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        config: Optional server configuration

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    setup_logging(config)
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    store = SqliteByteStore(config.db_path)
    manager = build_manager(config, store)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[Dict[str, FeedCollectionManager]]:
        await manager.initialize()
        try:
            yield {"manager": manager}
        finally:
            await manager.close()
            await store.close()
            logger.info("Feed manager shut down")

    # Configure DNS rebinding protection (disabled by default for development)
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()] if allowed_hosts_env else []

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")

    mcp_server = FastMCP(
        config.name or "feed_sync",
        lifespan=lifespan,
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts
        )
    )

    register_tools(mcp_server, manager)

    logger.info("Server initialization complete")
    return mcp_server


def register_tools(mcp_server: FastMCP, manager: FeedCollectionManager) -> None:
    """Register all feed tools with the server."""
    for tool_func in build_feed_tools(manager):
        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(tool_func)
        logger.info(f"Registered feed tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized")


@click.command()
@click.option(
    "--port",
    default=3001,
    help="Port to listen on for SSE or Streamable HTTP transport"
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    help="Transport type (stdio, sse, or streamable-http)"
)
def main(port: int, host: str, transport: str) -> int:
    """Run the feed_sync server with specified transport."""
    server = create_mcp_server()

    async def run_server():
        if transport == "stdio":
            logger.info("Starting server with STDIO transport")
            await server.run_stdio_async()
        elif transport == "sse":
            logger.info(f"Starting server with SSE transport on {host}:{port}")
            server.settings.host = host
            server.settings.port = port
            await server.run_sse_async()
        elif transport == "streamable-http":
            logger.info(f"Starting server with Streamable HTTP transport on {host}:{port}")
            server.settings.host = host
            server.settings.port = port
            server.settings.streamable_http_path = "/mcp"
            await server.run_streamable_http_async()
        else:
            raise ValueError(f"Unknown transport: {transport}")

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
