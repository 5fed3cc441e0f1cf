"""MCP server package initialization"""

from feed_sync.server.app import build_manager, create_mcp_server, main

__all__ = ["build_manager", "create_mcp_server", "main"]
