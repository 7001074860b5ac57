"""Audit trail: one ``feed_sync_logs`` row per sync run, success or not."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from carzo_feed.data.store import InventoryStore

if TYPE_CHECKING:
    from carzo_feed.ingestion.pipeline import SyncResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncLogEntry:
    sync_started_at: str
    sync_completed_at: str
    vehicles_added: int
    vehicles_updated: int
    vehicles_removed: int
    total_vehicles: int
    duration_seconds: int
    success: bool
    status: str
    error_message: str | None

    @classmethod
    def from_result(cls, result: SyncResult) -> SyncLogEntry:
        finished = result.finished_at or datetime.now(timezone.utc)
        return cls(
            sync_started_at=result.started_at.isoformat(),
            sync_completed_at=finished.isoformat(),
            vehicles_added=result.added,
            vehicles_updated=result.updated,
            vehicles_removed=result.removed,
            total_vehicles=result.total,
            duration_seconds=round(result.duration),
            success=result.success,
            status="success" if result.success else "failed",
            error_message="; ".join(result.errors) if result.errors else None,
        )

    def to_row(self) -> dict[str, Any]:
        return asdict(self)


class SyncLogger:
    """Writes the audit row.  Never raises: a logging failure must not hide the run's own error."""

    def __init__(self, store: InventoryStore) -> None:
        self.store = store

    async def record(self, result: SyncResult) -> SyncLogEntry | None:
        entry = SyncLogEntry.from_result(result)
        try:
            await self.store.append_sync_log(entry.to_row())
        except Exception:
            logger.exception("Failed to write sync log entry")
            return None
        return entry
