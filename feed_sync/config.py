"""Configuration for feed_sync.

Settings come from FEED_SYNC_* environment variables, falling back to the
defaults declared on ServerConfig.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _default_db_path() -> Path:
    return Path.home() / ".feed_sync" / "feed_sync.db"


@dataclass
class ServerConfig:
    """Runtime configuration for the sync engine and its MCP server."""

    name: str = "feed_sync"
    log_level: str = "INFO"
    db_path: Path = field(default_factory=_default_db_path)
    fetch_timeout: float = 30.0
    max_attempts: int = 5
    retry_delay: float = 1.0
    user_agent: str = "FeedSync/1.0 (RSS Feed Reader)"
    default_feeds_path: Optional[Path] = None


def load_config() -> ServerConfig:
    """Build a ServerConfig from the environment.

    Returns:
        ServerConfig with any FEED_SYNC_* overrides applied
    """
    config = ServerConfig()

    db_path = os.environ.get("FEED_SYNC_DB_PATH")
    if db_path:
        config.db_path = Path(db_path)

    log_level = os.environ.get("FEED_SYNC_LOG_LEVEL")
    if log_level:
        config.log_level = log_level.upper()

    fetch_timeout = os.environ.get("FEED_SYNC_FETCH_TIMEOUT")
    if fetch_timeout:
        config.fetch_timeout = float(fetch_timeout)

    max_attempts = os.environ.get("FEED_SYNC_MAX_ATTEMPTS")
    if max_attempts:
        config.max_attempts = int(max_attempts)

    retry_delay = os.environ.get("FEED_SYNC_RETRY_DELAY")
    if retry_delay:
        config.retry_delay = float(retry_delay)

    user_agent = os.environ.get("FEED_SYNC_USER_AGENT")
    if user_agent:
        config.user_agent = user_agent

    default_feeds = os.environ.get("FEED_SYNC_DEFAULT_FEEDS")
    if default_feeds:
        config.default_feeds_path = Path(default_feeds)

    if config.max_attempts < 1:
        raise ValueError(f"FEED_SYNC_MAX_ATTEMPTS must be at least 1, got {config.max_attempts}")

    return config


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config

    if _config is None:
        _config = load_config()
    return _config
