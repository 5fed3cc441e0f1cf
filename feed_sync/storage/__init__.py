"""Storage layer for feed_sync."""

from .database import (
    ByteStore,
    SqliteByteStore,
    init_database,
)
from .persistence import (
    FAVORITES_KEY,
    FEED_LIST_KEY,
    PersistenceGateway,
)

__all__ = [
    "ByteStore",
    "SqliteByteStore",
    "init_database",
    "FAVORITES_KEY",
    "FEED_LIST_KEY",
    "PersistenceGateway",
]
