"""Shared constants used across the sync stages.

Single source of truth for feed location, batch sizing and parsing tables.
"""

from __future__ import annotations

DEFAULT_FEED_HOST = "feed.lotlinx.com"
FEED_URL_TEMPLATE = "https://{host}/{publisher_id}.{extension}"
FEED_ARCHIVE_EXTENSION = "zip"

BATCH_SIZE = 1000
DEFAULT_TARGETING_RADIUS = 30

SYNC_JOB_NAME = "feed-sync"
LOCK_STALE_AFTER_SECONDS = 2 * 60 * 60

TRUE_FLAG_VALUES: frozenset[str] = frozenset({"true", "1", "yes"})

TABULAR_SUFFIXES: tuple[str, ...] = (".tsv", ".txt", ".csv")

# Largest value the store's INT columns accept; larger feed values are treated as absent.
MAX_STORED_INT = 2**31 - 1
