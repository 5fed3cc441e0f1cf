"""Unit tests for environment-driven configuration."""

import logging
from pathlib import Path

import pytest

from feed_sync.config import ServerConfig, load_config
from feed_sync.logging_config import setup_logging


ENV_VARS = [
    "FEED_SYNC_DB_PATH",
    "FEED_SYNC_LOG_LEVEL",
    "FEED_SYNC_FETCH_TIMEOUT",
    "FEED_SYNC_MAX_ATTEMPTS",
    "FEED_SYNC_RETRY_DELAY",
    "FEED_SYNC_USER_AGENT",
    "FEED_SYNC_DEFAULT_FEEDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = load_config()

    assert config.name == "feed_sync"
    assert config.max_attempts == 5
    assert config.db_path == Path.home() / ".feed_sync" / "feed_sync.db"
    assert config.default_feeds_path is None


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("FEED_SYNC_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("FEED_SYNC_LOG_LEVEL", "debug")
    monkeypatch.setenv("FEED_SYNC_FETCH_TIMEOUT", "2.5")
    monkeypatch.setenv("FEED_SYNC_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("FEED_SYNC_RETRY_DELAY", "0")
    monkeypatch.setenv("FEED_SYNC_USER_AGENT", "Agent/2")
    monkeypatch.setenv("FEED_SYNC_DEFAULT_FEEDS", str(tmp_path / "feeds.json"))

    config = load_config()

    assert config.db_path == tmp_path / "x.db"
    assert config.log_level == "DEBUG"
    assert config.fetch_timeout == 2.5
    assert config.max_attempts == 3
    assert config.retry_delay == 0
    assert config.user_agent == "Agent/2"
    assert config.default_feeds_path == tmp_path / "feeds.json"


def test_max_attempts_must_be_positive(monkeypatch):
    monkeypatch.setenv("FEED_SYNC_MAX_ATTEMPTS", "0")

    with pytest.raises(ValueError):
        load_config()


def test_setup_logging_adds_one_handler():
    logger = setup_logging(ServerConfig(log_level="WARNING"))
    setup_logging(ServerConfig(log_level="WARNING"))

    handlers = [h for h in logger.handlers if getattr(h, "_feed_sync", False)]
    assert len(handlers) == 1
    assert logger.level == logging.WARNING
