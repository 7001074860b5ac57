"""Carzo feed sync pipeline: downloads, parses, maps and reconciles the partner feed.

Stages run strictly in order: lock → download → extract → parse/map → sync →
cleanup → audit log.  Every fatal error is turned into a failed
:class:`SyncResult`; the audit row is written either way.
"""

from __future__ import annotations

import logging
import os
import shutil
import socket
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from carzo_feed.clients.feed import FeedClient
from carzo_feed.config import FeedSyncSettings
from carzo_feed.constants import SYNC_JOB_NAME
from carzo_feed.data.store import InventoryStore
from carzo_feed.data.sync_log import SyncLogger
from carzo_feed.errors import FeedSyncError, ParseError, SyncLockedError
from carzo_feed.ingestion.archive import extract_feed_file
from carzo_feed.ingestion.mapping import VehicleRecord, map_feed_record
from carzo_feed.ingestion.reader import iter_feed_records
from carzo_feed.ingestion.sync import InventorySynchronizer, SyncCounts

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync run.  Summarized into a ``feed_sync_logs`` row."""
    success: bool = False
    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: list[str] = field(default_factory=list)
    duration: float = 0.0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    total: int = 0
    skipped: int = 0
    dry_run: bool = False

    def apply(self, counts: SyncCounts) -> None:
        self.added = counts.added
        self.updated = counts.updated
        self.removed = counts.removed
        self.total = counts.total


def _lock_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class FeedSyncPipeline:
    """One configured sync job; call :meth:`run` once per scheduled tick."""

    def __init__(
        self,
        settings: FeedSyncSettings,
        store: InventoryStore,
        *,
        feed_client_factory: Callable[..., Any] = FeedClient,
        scratch_dir: str | Path | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.feed_client_factory = feed_client_factory
        self.scratch_dir = Path(scratch_dir) if scratch_dir else None
        if self.scratch_dir is None and settings.scratch_dir:
            self.scratch_dir = Path(settings.scratch_dir)
        self.sync_logger = SyncLogger(store)
        self.owner = _lock_owner()

    async def run(
        self,
        *,
        feed_file: str | Path | None = None,
        dry_run: bool = False,
    ) -> SyncResult:
        result = SyncResult(dry_run=dry_run)
        start = time.monotonic()
        scratch_files: list[Path] = []
        owned_dir: Path | None = None
        lock_held = False

        logger.info("Starting feed sync%s", " (dry run)" if dry_run else "")
        try:
            if not dry_run:
                lock_held = await self._acquire_lock()

            if feed_file is not None:
                local = Path(feed_file)
                if local.suffix.lower() == ".zip":
                    owned_dir = self._private_dir()
                tsv_path = self._prepare_local_file(local, owned_dir)
            else:
                work_dir = self.scratch_dir
                if work_dir is None:
                    work_dir = owned_dir = self._private_dir()
                tsv_path = await self._download_and_extract(work_dir, scratch_files)

            vehicles, skipped = self._map_feed(tsv_path)
            result.skipped = skipped
            if not vehicles:
                raise ParseError("Feed contained no vehicles; refusing to deactivate inventory")

            synchronizer = InventorySynchronizer(
                self.store, batch_size=self.settings.batch_size,
            )
            if dry_run:
                counts = synchronizer.plan(vehicles, await self.store.active_vins())
            else:
                counts = await synchronizer.sync(vehicles)
            result.apply(counts)
            result.success = True
        except FeedSyncError as exc:
            logger.error("Feed sync failed [%s]: %s", exc.code, exc)
            result.errors.append(str(exc))
        except Exception as exc:
            logger.exception("Feed sync failed with an unexpected error")
            result.errors.append(str(exc) or exc.__class__.__name__)
        finally:
            self._cleanup(scratch_files, owned_dir)
            if lock_held:
                await self._release_lock()
            result.duration = time.monotonic() - start
            result.finished_at = datetime.now(timezone.utc)

        if result.success:
            logger.info(
                "Feed sync complete: added=%d updated=%d removed=%d skipped=%d in %.2fs",
                result.added, result.updated, result.removed, result.skipped, result.duration,
            )
        if not dry_run:
            await self.sync_logger.record(result)
        return result

    # ── Stages ─────────────────────────────────────────────────────

    async def _acquire_lock(self) -> bool:
        acquired = await self.store.acquire_sync_lock(
            SYNC_JOB_NAME,
            owner=self.owner,
            stale_after=self.settings.lock_stale_after_seconds,
        )
        if not acquired:
            raise SyncLockedError("Another feed sync is already running")
        return True

    async def _release_lock(self) -> None:
        try:
            await self.store.release_sync_lock(SYNC_JOB_NAME, owner=self.owner)
        except FeedSyncError as exc:
            logger.warning("Could not release sync lock: %s", exc)

    async def _download_and_extract(self, work_dir: Path, scratch_files: list[Path]) -> Path:
        async with self.feed_client_factory(
            self.settings.feed_username,
            self.settings.feed_password,
            self.settings.publisher_id,
            host=self.settings.feed_host,
        ) as client:
            archive_path = await client.download(work_dir)
        scratch_files.append(archive_path)

        tsv_path = extract_feed_file(archive_path)
        scratch_files.append(tsv_path)
        return tsv_path

    def _private_dir(self) -> Path:
        if self.scratch_dir is not None:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="carzo-feed-", dir=self.scratch_dir))

    @staticmethod
    def _prepare_local_file(path: Path, work_dir: Path | None) -> Path:
        """Use an operator-supplied feed file; a zip is unpacked into ``work_dir``.

        Nothing is written beside the operator's file.
        """
        if not path.is_file():
            raise ParseError(f"Feed file not found: {path}")
        if path.suffix.lower() == ".zip":
            return extract_feed_file(path, work_dir)
        return path

    def _map_feed(self, tsv_path: Path) -> tuple[list[VehicleRecord], int]:
        synced_at = datetime.now(timezone.utc)
        vehicles: list[VehicleRecord] = []
        skipped = 0
        for raw in iter_feed_records(tsv_path):
            vehicle = map_feed_record(raw, synced_at=synced_at)
            if vehicle is None:
                skipped += 1
                continue
            vehicles.append(vehicle)
        logger.info("Parsed %d vehicles (%d rows skipped)", len(vehicles), skipped)
        return vehicles, skipped

    @staticmethod
    def _cleanup(scratch_files: list[Path], owned_dir: Path | None) -> None:
        for path in scratch_files:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove scratch file %s: %s", path, exc)
        if owned_dir is not None:
            shutil.rmtree(owned_dir, ignore_errors=True)
