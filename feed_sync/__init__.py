"""feed_sync - feed synchronization engine with an MCP tool surface."""

__version__ = "0.1.0"
