#!/usr/bin/env python3
"""Performance benchmark for the feed parse/map and batched sync hot paths."""

from __future__ import annotations

import argparse
import asyncio
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

from carzo_feed.data.store import SqliteInventoryStore
from carzo_feed.ingestion.mapping import VehicleRecord, map_feed_record
from carzo_feed.ingestion.reader import FEED_COLUMNS, iter_feed_records
from carzo_feed.ingestion.sync import InventorySynchronizer

MAKES = ["Toyota", "Honda", "Ford", "Tesla", "Hyundai"]
MODELS = ["Camry", "Accord", "F-150", "Model 3", "Tucson"]
BODIES = ["Sedan", "SUV", "Truck", "Sedan", "SUV"]


def make_row(i: int) -> dict[str, str]:
    row = {column: "" for column in FEED_COLUMNS}
    row.update({
        "VIN": f"VIN{i:014d}",
        "Year": str(2016 + (i % 10)),
        "Make": MAKES[i % 5],
        "Model": MODELS[i % 5],
        "Price": str(18_000 + (i % 200) * 300),
        "Miles": str(5_000 + (i % 120_000)),
        "BodyStyle": BODIES[i % 5],
        "ImageUrls": ",".join(f"https://img.example/{i}/{n}.jpg" for n in range(8)),
        "Description": 'Clean "one owner" trade-in. ' * 10,
        "DealerId": f"D{i % 400:04d}",
        "DealerName": "Benchmark Auto",
        "City": "Austin" if i % 3 else "Dallas",
        "State": "TX",
        "Certified": "yes" if i % 7 == 0 else "false",
        "Dol": str(i % 90) if i % 11 else "",
    })
    return row


def write_feed(path: Path, records: int) -> None:
    columns = list(FEED_COLUMNS)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write("\t".join(columns) + "\n")
        for i in range(records):
            row = make_row(i)
            fh.write("\t".join(row[c] for c in columns) + "\n")


def _remove_db(db_path: str) -> None:
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(db_path + suffix)
        except FileNotFoundError:
            pass


# ── Benchmarks ────────────────────────────────────────────────────────


def bench_parse_and_map(path: Path) -> tuple[float, list[VehicleRecord]]:
    synced_at = datetime.now(timezone.utc)
    start = time.perf_counter()
    vehicles = [
        v for v in (map_feed_record(r, synced_at=synced_at) for r in iter_feed_records(path))
        if v is not None
    ]
    return time.perf_counter() - start, vehicles


async def bench_disk_sync(vehicles: list[VehicleRecord], batch_size: int) -> dict[str, float]:
    with tempfile.NamedTemporaryFile(prefix="carzo-bench-", suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    try:
        store = SqliteInventoryStore(db_path)
        synchronizer = InventorySynchronizer(store, batch_size=batch_size)

        start = time.perf_counter()
        await synchronizer.sync(vehicles)
        first = time.perf_counter() - start

        # Same feed again: every row is an update.
        start = time.perf_counter()
        await synchronizer.sync(vehicles)
        second = time.perf_counter() - start

        # Drop a tenth of the feed so the removal path runs.
        kept = vehicles[: len(vehicles) - len(vehicles) // 10]
        start = time.perf_counter()
        counts = await synchronizer.sync(kept)
        shrink = time.perf_counter() - start
        await store.close()
    finally:
        _remove_db(db_path)

    return {
        "first": first,
        "second": second,
        "shrink": shrink,
        "removed": counts.removed,
        "rows_per_sec": len(vehicles) / max(first, 1e-9),
    }


# ── Main ──────────────────────────────────────────────────────────────


async def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark feed sync hot paths.")
    parser.add_argument("--records", type=int, default=50_000)
    parser.add_argument("--batch-size", type=int, default=1_000)
    args = parser.parse_args()

    print("carzo_feed_sync_benchmark")
    print(f"records={args.records}")
    print(f"batch_size={args.batch_size}")
    print()

    with tempfile.TemporaryDirectory(prefix="carzo-bench-") as tmp:
        feed_path = Path(tmp) / "feed.tsv"
        write_feed(feed_path, args.records)

        # 1. Parse + map
        parse_elapsed, vehicles = bench_parse_and_map(feed_path)
        print(f"parse_map_seconds={parse_elapsed:.6f}")
        print(f"parse_map_rows_per_sec={len(vehicles) / max(parse_elapsed, 1e-9):.0f}")
        print()

    # 2. Batched sync: insert, idempotent re-run, shrink
    sync = await bench_disk_sync(vehicles, args.batch_size)
    print(f"disk_sync_insert_seconds={sync['first']:.6f}")
    print(f"disk_sync_insert_rows_per_sec={sync['rows_per_sec']:.0f}")
    print(f"disk_sync_update_seconds={sync['second']:.6f}")
    print(f"disk_sync_shrink_seconds={sync['shrink']:.6f}")
    print(f"disk_sync_removed={sync['removed']:.0f}")


if __name__ == "__main__":
    asyncio.run(main())
