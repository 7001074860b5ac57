"""Diff the mapped feed against active inventory and write it in batches."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from carzo_feed.constants import BATCH_SIZE
from carzo_feed.data.store import InventoryStore
from carzo_feed.errors import DatabaseError
from carzo_feed.ingestion.mapping import VehicleRecord

logger = logging.getLogger(__name__)


@dataclass
class SyncCounts:
    added: int = 0
    updated: int = 0
    removed: int = 0
    total: int = 0
    batches: int = 0


def chunked(items: Sequence[VehicleRecord], size: int) -> Iterator[Sequence[VehicleRecord]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class InventorySynchronizer:
    """Upserts one run's vehicles and soft-deletes VINs that left the feed.

    Batches run sequentially.  A failed batch aborts the run; batches that
    already committed stay committed, and re-running the same feed converges
    because every write is an upsert keyed by VIN.
    """

    def __init__(self, store: InventoryStore, *, batch_size: int = BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size

    @staticmethod
    def _dedupe_by_vin(vehicles: Sequence[VehicleRecord]) -> list[VehicleRecord]:
        seen_vins: set[str] = set()
        unique: list[VehicleRecord] = []
        for vehicle in vehicles:
            vin = vehicle.vin
            if vin not in seen_vins:
                seen_vins.add(vin)
                unique.append(vehicle)
        return unique

    def plan(self, vehicles: Sequence[VehicleRecord], current_vins: set[str]) -> SyncCounts:
        """Counts a sync would produce, without writing anything."""
        unique = self._dedupe_by_vin(vehicles)
        feed_vins = {v.vin for v in unique}
        updated = len(feed_vins & current_vins)
        batches = (len(unique) + self.batch_size - 1) // self.batch_size
        return SyncCounts(
            added=len(unique) - updated,
            updated=updated,
            removed=len(current_vins - feed_vins),
            total=len(unique),
            batches=batches,
        )

    async def sync(self, vehicles: Sequence[VehicleRecord]) -> SyncCounts:
        # Snapshot before any write so classification never sees this run's inserts.
        current_vins = await self.store.active_vins()
        unique = self._dedupe_by_vin(vehicles)
        if len(unique) < len(vehicles):
            logger.info("Dropped %d duplicate VIN rows", len(vehicles) - len(unique))
        feed_vins = {v.vin for v in unique}

        counts = SyncCounts(total=len(unique))
        batch_total = (len(unique) + self.batch_size - 1) // self.batch_size
        synced = 0
        for number, batch in enumerate(chunked(unique, self.batch_size), start=1):
            last_sync = datetime.now(timezone.utc).isoformat()
            rows = []
            for vehicle in batch:
                row = vehicle.to_row()
                row["is_active"] = True
                row["last_sync"] = last_sync
                rows.append(row)

            try:
                await self.store.upsert_vehicles(rows)
            except DatabaseError as exc:
                logger.error("Batch %d/%d upsert failed: %s", number, batch_total, exc)
                raise DatabaseError(
                    f"Batch {number}/{batch_total} upsert failed: {exc}",
                    status=exc.status,
                    details={"batch": number, "committed_batches": number - 1},
                ) from exc

            for vehicle in batch:
                if vehicle.vin in current_vins:
                    counts.updated += 1
                else:
                    counts.added += 1
            counts.batches = number
            synced += len(batch)
            logger.info("Synced %d/%d", synced, len(unique))

        removed_vins = current_vins - feed_vins
        if removed_vins:
            await self.store.deactivate(removed_vins)
            logger.info("Deactivated %d vehicles no longer in the feed", len(removed_vins))
        counts.removed = len(removed_vins)
        return counts
