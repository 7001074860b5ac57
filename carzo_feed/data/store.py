"""InventoryStore protocol and SQLite implementation for the shared vehicle table."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Protocol,
    runtime_checkable,
)

from carzo_feed.errors import DatabaseError

# Columns written by the feed sync, in table order.  ``vin`` is the natural key.
VEHICLE_FIELDS = (
    "vin", "year", "make", "model", "trim", "price", "miles", "condition",
    "body_style", "primary_image_url", "total_photos",
    "transmission", "fuel_type", "drive_type", "exterior_color",
    "interior_color", "doors", "cylinders", "description", "options",
    # Dealer fields
    "dealer_id", "dealer_name", "dealer_address", "dealer_city",
    "dealer_state", "dealer_zip", "dealer_vdp_url",
    # Targeting fields
    "certified", "latitude", "longitude", "dma", "targeting_radius",
    "payout", "priority", "dol",
    # Sync metadata
    "is_active", "last_sync",
)
_BOOL_FIELDS = frozenset({"certified", "is_active"})

_UPDATE_COLS = [f for f in VEHICLE_FIELDS if f != "vin"]
UPSERT_SQL = (
    "INSERT INTO vehicles ("
    + ", ".join(VEHICLE_FIELDS)
    + ") VALUES ("
    + ", ".join(["?"] * len(VEHICLE_FIELDS))
    + ") ON CONFLICT(vin) DO UPDATE SET "
    + ", ".join(f"{c}=excluded.{c}" for c in _UPDATE_COLS)
)

SYNC_LOG_FIELDS = (
    "sync_started_at", "sync_completed_at", "vehicles_added",
    "vehicles_updated", "vehicles_removed", "total_vehicles",
    "duration_seconds", "success", "status", "error_message",
)

# Stay well under SQLITE_MAX_VARIABLE_NUMBER on older builds.
_IN_CLAUSE_CHUNK = 500


# ── Protocol ────────────────────────────────────────────────────────


@runtime_checkable
class InventoryStore(Protocol):
    """Minimal interface the feed sync needs from the shared store."""

    async def active_vins(self) -> set[str]: ...
    async def upsert_vehicles(self, rows: list[dict[str, Any]]) -> None: ...
    async def deactivate(self, vins: Iterable[str]) -> int: ...
    async def append_sync_log(self, entry: dict[str, Any]) -> None: ...
    async def acquire_sync_lock(
        self,
        job: str,
        *,
        owner: str,
        stale_after: float,
    ) -> bool: ...
    async def release_sync_lock(self, job: str, *, owner: str) -> None: ...
    async def close(self) -> None: ...


class SqliteInventoryStore:
    """SQLite-backed inventory store with WAL mode and a VIN-unique vehicles table."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.execute("PRAGMA temp_store=MEMORY")
            self._create_schema()

    # ── Schema ─────────────────────────────────────────────────────

    def _create_schema(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS vehicles (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                vin               TEXT NOT NULL UNIQUE,
                year              INTEGER,
                make              TEXT COLLATE NOCASE,
                model             TEXT COLLATE NOCASE,
                trim              TEXT,
                price             REAL NOT NULL DEFAULT 0,
                miles             INTEGER,
                condition         TEXT,
                body_style        TEXT COLLATE NOCASE,
                primary_image_url TEXT NOT NULL DEFAULT '',
                total_photos      INTEGER NOT NULL DEFAULT 0,
                transmission      TEXT,
                fuel_type         TEXT,
                drive_type        TEXT,
                exterior_color    TEXT,
                interior_color    TEXT,
                doors             INTEGER,
                cylinders         INTEGER,
                description       TEXT,
                options           TEXT,
                dealer_id         TEXT NOT NULL,
                dealer_name       TEXT NOT NULL DEFAULT '',
                dealer_address    TEXT,
                dealer_city       TEXT,
                dealer_state      TEXT,
                dealer_zip        TEXT,
                dealer_vdp_url    TEXT,
                certified         INTEGER NOT NULL DEFAULT 0,
                latitude          REAL,
                longitude         REAL,
                dma               TEXT,
                targeting_radius  INTEGER NOT NULL DEFAULT 30,
                payout            REAL,
                priority          INTEGER,
                dol               INTEGER,
                is_active         INTEGER NOT NULL DEFAULT 1,
                last_sync         TEXT NOT NULL DEFAULT '',
                created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            );
            CREATE INDEX IF NOT EXISTS idx_vehicles_is_active
                ON vehicles(is_active);
            CREATE INDEX IF NOT EXISTS idx_vehicles_dealer
                ON vehicles(dealer_id);
            CREATE INDEX IF NOT EXISTS idx_vehicles_dma
                ON vehicles(dma) WHERE dma IS NOT NULL;

            CREATE TABLE IF NOT EXISTS feed_sync_logs (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                sync_started_at   TEXT NOT NULL,
                sync_completed_at TEXT NOT NULL,
                vehicles_added    INTEGER NOT NULL DEFAULT 0,
                vehicles_updated  INTEGER NOT NULL DEFAULT 0,
                vehicles_removed  INTEGER NOT NULL DEFAULT 0,
                total_vehicles    INTEGER,
                duration_seconds  INTEGER,
                success           INTEGER NOT NULL DEFAULT 0,
                status            TEXT NOT NULL DEFAULT 'failed',
                error_message     TEXT,
                created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
            );
            CREATE INDEX IF NOT EXISTS idx_feed_sync_logs_started
                ON feed_sync_logs(sync_started_at);

            CREATE TABLE IF NOT EXISTS sync_locks (
                job         TEXT PRIMARY KEY,
                owner       TEXT NOT NULL,
                acquired_at TEXT NOT NULL
            );
        """)

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _vehicle_to_row(vehicle: dict[str, Any]) -> tuple[Any, ...]:
        g = vehicle.get
        return tuple(
            (1 if g(f) else 0) if f in _BOOL_FIELDS else g(f)
            for f in VEHICLE_FIELDS
        )

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
        d = dict(row)
        for f in _BOOL_FIELDS:
            d[f] = bool(d[f])
        return d

    @staticmethod
    def _chunks(values: list[str], size: int = _IN_CLAUSE_CHUNK) -> Iterable[list[str]]:
        for i in range(0, len(values), size):
            yield values[i:i + size]

    # ── Sync contract ──────────────────────────────────────────────

    async def active_vins(self) -> set[str]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT vin FROM vehicles WHERE is_active = 1"
                ).fetchall()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Could not load active VINs: {exc}") from exc
        return {r["vin"] for r in rows}

    async def upsert_vehicles(self, rows: list[dict[str, Any]]) -> None:
        """Insert-or-replace one batch by VIN in a single transaction."""
        if not rows:
            return
        params = [self._vehicle_to_row(r) for r in rows]
        try:
            with self._lock:
                with self._conn:
                    self._conn.executemany(UPSERT_SQL, params)
        except (sqlite3.Error, OverflowError) as exc:
            raise DatabaseError(f"Batch upsert failed: {exc}") from exc

    async def deactivate(self, vins: Iterable[str]) -> int:
        """Soft-delete exactly ``vins``; rows are kept with ``is_active = 0``."""
        values = sorted(set(vins))
        if not values:
            return 0
        updated = 0
        try:
            with self._lock:
                with self._conn:
                    for chunk in self._chunks(values):
                        placeholders = ", ".join("?" for _ in chunk)
                        cursor = self._conn.execute(
                            f"UPDATE vehicles SET is_active = 0 WHERE vin IN ({placeholders})",
                            chunk,
                        )
                        updated += cursor.rowcount
        except sqlite3.Error as exc:
            raise DatabaseError(f"Deactivating removed vehicles failed: {exc}") from exc
        return updated

    async def append_sync_log(self, entry: dict[str, Any]) -> None:
        row = tuple(
            (1 if entry.get(f) else 0) if f == "success" else entry.get(f)
            for f in SYNC_LOG_FIELDS
        )
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO feed_sync_logs ("
                        + ", ".join(SYNC_LOG_FIELDS)
                        + ") VALUES ("
                        + ", ".join("?" for _ in SYNC_LOG_FIELDS)
                        + ")",
                        row,
                    )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Writing sync log failed: {exc}") from exc

    async def acquire_sync_lock(
        self,
        job: str,
        *,
        owner: str,
        stale_after: float,
    ) -> bool:
        """Take the job lock, reclaiming it when the holder is older than ``stale_after``."""
        now = self._now()
        cutoff = (now - timedelta(seconds=stale_after)).isoformat()
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM sync_locks WHERE job = ? AND acquired_at < ?",
                        (job, cutoff),
                    )
                    cursor = self._conn.execute(
                        "INSERT OR IGNORE INTO sync_locks (job, owner, acquired_at) "
                        "VALUES (?, ?, ?)",
                        (job, owner, now.isoformat()),
                    )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Acquiring sync lock failed: {exc}") from exc
        return cursor.rowcount == 1

    async def release_sync_lock(self, job: str, *, owner: str) -> None:
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM sync_locks WHERE job = ? AND owner = ?",
                        (job, owner),
                    )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Releasing sync lock failed: {exc}") from exc

    async def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Read helpers ───────────────────────────────────────────────

    def get_by_vin(self, vin: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM vehicles WHERE vin = ?", (vin.strip(),)
            ).fetchone()
        return self._row_to_dict(row) if row else None

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM vehicles").fetchone()
        return row[0]

    def count_active(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM vehicles WHERE is_active = 1"
            ).fetchone()
        return row[0]

    def sync_logs(self, *, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent audit rows first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM feed_sync_logs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        logs = [dict(r) for r in rows]
        for log in logs:
            log["success"] = bool(log["success"])
        return logs
