"""Command-line entry point: ``carzo-feed-sync``.

Exit status is 0 for a successful run, 1 for a failed run (the audit row is
still written) and 2 when configuration is missing, before any network call.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from carzo_feed.config import FeedSyncSettings, load_env_file
from carzo_feed.data.inventory import open_store
from carzo_feed.errors import ConfigurationError
from carzo_feed.ingestion.pipeline import FeedSyncPipeline, SyncResult

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

_DEFAULT_ENV_FILE = ".env"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carzo-feed-sync",
        description="Download the partner inventory feed and sync it into the vehicle store.",
    )
    parser.add_argument(
        "--feed-file",
        type=Path,
        help="Sync from a local .tsv or .zip instead of downloading the feed",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and diff only; write nothing to the store",
    )
    parser.add_argument("--scratch-dir", type=Path, help="Directory for the downloaded archive")
    parser.add_argument("--batch-size", type=int, help="Vehicles per upsert batch")
    parser.add_argument("--env-file", default=_DEFAULT_ENV_FILE, help="Optional KEY=VALUE file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


async def run_sync(
    settings: FeedSyncSettings,
    *,
    feed_file: Path | None = None,
    dry_run: bool = False,
    scratch_dir: Path | None = None,
) -> SyncResult:
    store = open_store(settings.store_url, settings.store_key)
    try:
        pipeline = FeedSyncPipeline(settings, store, scratch_dir=scratch_dir)
        return await pipeline.run(feed_file=feed_file, dry_run=dry_run)
    finally:
        await store.close()


def _report(result: SyncResult) -> None:
    if result.success:
        label = "Dry run" if result.dry_run else "Sync"
        print(
            f"{label} completed: added={result.added} updated={result.updated} "
            f"removed={result.removed} skipped={result.skipped} "
            f"duration={result.duration:.2f}s"
        )
    else:
        print("Sync failed: " + "; ".join(result.errors), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_env_file(args.env_file)

    try:
        settings = FeedSyncSettings.from_env()
        if args.batch_size is not None:
            if args.batch_size < 1:
                raise ConfigurationError("--batch-size must be positive")
            settings = replace(settings, batch_size=args.batch_size)
        result = asyncio.run(
            run_sync(
                settings,
                feed_file=args.feed_file,
                dry_run=args.dry_run,
                scratch_dir=args.scratch_dir,
            )
        )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    _report(result)
    return EXIT_OK if result.success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
