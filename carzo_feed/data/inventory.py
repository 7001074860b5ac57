"""Store factory: picks the InventoryStore backend from the store URL.

``sqlite:///path/to.db`` (or a bare filesystem path) opens the local SQLite
store; ``http(s)://`` URLs open the hosted PostgREST store with the write key.
"""

from __future__ import annotations

from carzo_feed.data.rest_store import RestInventoryStore
from carzo_feed.data.store import InventoryStore, SqliteInventoryStore
from carzo_feed.errors import ConfigurationError

_SQLITE_PREFIX = "sqlite:///"


def open_store(url: str, credential: str = "") -> InventoryStore:
    """Return the store for ``url``.  The credential is only sent to HTTP stores."""
    url = url.strip()
    if not url:
        raise ConfigurationError("Store URL is empty")
    if url.startswith(("http://", "https://")):
        if not credential.strip():
            raise ConfigurationError("A store write key is required for HTTP stores")
        return RestInventoryStore(url, credential)
    if url.startswith(_SQLITE_PREFIX):
        return SqliteInventoryStore(url[len(_SQLITE_PREFIX):] or ":memory:")
    if "://" in url:
        raise ConfigurationError(f"Unsupported store URL scheme: {url.split('://', 1)[0]}")
    return SqliteInventoryStore(url)
