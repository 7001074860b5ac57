"""Diff and batched sync tests against the in-memory store."""

from __future__ import annotations

from typing import Any

import pytest

from carzo_feed.data.store import SqliteInventoryStore
from carzo_feed.errors import DatabaseError
from carzo_feed.ingestion.mapping import VehicleRecord
from carzo_feed.ingestion.sync import InventorySynchronizer, SyncCounts, chunked


def _vehicle(vin: str, **overrides: Any) -> VehicleRecord:
    values: dict[str, Any] = {
        "vin": vin,
        "dealer_id": "D1",
        "dealer_name": "Test Dealer",
        "make": "Kia",
        "model": "Soul",
        "price": 18_000.0,
    }
    values.update(overrides)
    return VehicleRecord(**values)


class _RecordingStore(SqliteInventoryStore):
    """Counts upsert calls and optionally fails one batch."""

    def __init__(self, fail_on_batch: int | None = None) -> None:
        super().__init__(":memory:")
        self.fail_on_batch = fail_on_batch
        self.batch_sizes: list[int] = []
        self.deactivate_calls = 0

    async def upsert_vehicles(self, rows):
        self.batch_sizes.append(len(rows))
        if self.fail_on_batch == len(self.batch_sizes):
            raise DatabaseError("connection reset", status=503)
        await super().upsert_vehicles(rows)

    async def deactivate(self, vins):
        self.deactivate_calls += 1
        return await super().deactivate(vins)


# ── Batching ───────────────────────────────────────────────────


def test_chunked_splits_with_short_tail():
    sizes = [len(chunk) for chunk in chunked(list(range(2_500)), 1_000)]
    assert sizes == [1_000, 1_000, 500]


def test_batch_size_must_be_positive(store):
    with pytest.raises(ValueError):
        InventorySynchronizer(store, batch_size=0)


async def test_sync_writes_in_batches():
    store = _RecordingStore()
    vehicles = [_vehicle(f"VIN{i:05d}") for i in range(2_500)]

    counts = await InventorySynchronizer(store, batch_size=1_000).sync(vehicles)

    assert store.batch_sizes == [1_000, 1_000, 500]
    assert counts == SyncCounts(added=2_500, updated=0, removed=0, total=2_500, batches=3)
    assert store.count_active() == 2_500


async def test_failed_batch_aborts_run_and_keeps_committed_batches():
    store = _RecordingStore(fail_on_batch=2)
    await store.upsert_vehicles([_vehicle("OLD0001").to_row()])
    store.batch_sizes.clear()
    vehicles = [_vehicle(f"VIN{i:05d}") for i in range(2_500)]

    with pytest.raises(DatabaseError, match="Batch 2/3") as exc_info:
        await InventorySynchronizer(store, batch_size=1_000).sync(vehicles)

    assert exc_info.value.status == 503
    assert exc_info.value.details == {"batch": 2, "committed_batches": 1}
    # Batch 3 is never attempted.
    assert store.batch_sizes == [1_000, 1_000]
    # Batch 1 stays committed.
    assert store.get_by_vin("VIN00000") is not None
    assert store.get_by_vin("VIN01999") is None
    # No deactivation after a failed batch.
    assert store.deactivate_calls == 0
    assert store.get_by_vin("OLD0001")["is_active"] is True


# ── Diff semantics ─────────────────────────────────────────────


async def test_added_and_updated_classified_against_snapshot(store):
    await store.upsert_vehicles([_vehicle("A").to_row(), _vehicle("B").to_row()])

    counts = await InventorySynchronizer(store).sync([_vehicle("B"), _vehicle("C")])

    assert (counts.added, counts.updated, counts.removed) == (1, 1, 1)
    assert await store.active_vins() == {"B", "C"}


async def test_removed_vehicles_are_soft_deleted(store):
    await store.upsert_vehicles([_vehicle("A").to_row(), _vehicle("B").to_row()])

    await InventorySynchronizer(store).sync([_vehicle("A")])

    removed = store.get_by_vin("B")
    assert removed is not None
    assert removed["is_active"] is False
    assert removed["make"] == "Kia"
    assert store.count() == 2


async def test_inactive_vehicle_returning_counts_as_added_and_reactivates(store):
    await store.upsert_vehicles([_vehicle("A").to_row()])
    await store.deactivate(["A"])

    counts = await InventorySynchronizer(store).sync([_vehicle("A", price=15_000.0)])

    assert counts.added == 1
    assert counts.updated == 0
    vehicle = store.get_by_vin("A")
    assert vehicle["is_active"] is True
    assert vehicle["price"] == 15_000.0


async def test_sync_is_idempotent(store):
    vehicles = [_vehicle(f"V{i}") for i in range(5)]
    synchronizer = InventorySynchronizer(store, batch_size=2)

    first = await synchronizer.sync(vehicles)
    second = await synchronizer.sync(vehicles)

    assert (first.added, first.updated, first.removed) == (5, 0, 0)
    assert (second.added, second.updated, second.removed) == (0, 5, 0)
    assert store.count() == 5


async def test_duplicate_vins_first_occurrence_wins(store):
    vehicles = [_vehicle("A", price=1.0), _vehicle("B"), _vehicle("A", price=2.0)]

    counts = await InventorySynchronizer(store).sync(vehicles)

    assert counts.total == 2
    assert counts.added == 2
    assert store.get_by_vin("A")["price"] == 1.0


async def test_rows_are_stamped_active_with_sync_time(store):
    await InventorySynchronizer(store).sync([_vehicle("A", is_active=False, last_sync="")])

    vehicle = store.get_by_vin("A")
    assert vehicle["is_active"] is True
    assert vehicle["last_sync"] != ""


# ── Plan ───────────────────────────────────────────────────────


def test_plan_counts_without_writing(store):
    synchronizer = InventorySynchronizer(store, batch_size=2)
    vehicles = [_vehicle("A"), _vehicle("B"), _vehicle("C"), _vehicle("A")]

    counts = synchronizer.plan(vehicles, {"A", "Z"})

    assert counts == SyncCounts(added=2, updated=1, removed=1, total=3, batches=2)
    assert store.count() == 0
