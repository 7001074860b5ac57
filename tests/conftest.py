"""Shared test fixtures: in-memory store, feed file builders, settings."""

from __future__ import annotations

import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from carzo_feed.config import FeedSyncSettings
from carzo_feed.data.store import SqliteInventoryStore
from carzo_feed.ingestion.reader import FEED_COLUMNS

FEED_HEADER = list(FEED_COLUMNS)


def feed_row(vin: str, **overrides: str) -> dict[str, str]:
    """A complete feed row keyed by feed header names."""
    row = {column: "" for column in FEED_HEADER}
    row.update({
        "VIN": vin,
        "Year": "2021",
        "Make": "Toyota",
        "Model": "Camry",
        "Trim": "SE",
        "Price": "24999",
        "Miles": "18000",
        "Condition": "used",
        "BodyStyle": "Sedan",
        "ImageUrls": "https://img.example/1.jpg,https://img.example/2.jpg",
        "DealerId": "D100",
        "DealerName": "Sunrise Toyota",
        "City": "Tampa",
        "State": "FL",
        "Zip": "33602",
        "Url": f"https://click.example/{vin}",
        "Certified": "false",
        "Dol": "12",
    })
    row.update(overrides)
    return row


def render_tsv(rows: list[dict[str, str]], header: list[str] | None = None) -> str:
    columns = header or FEED_HEADER
    lines = ["\t".join(columns)]
    for row in rows:
        lines.append("\t".join(row.get(column, "") for column in columns))
    return "\n".join(lines) + "\n"


@pytest.fixture()
def store() -> SqliteInventoryStore:
    """A fresh in-memory store for each test."""
    return SqliteInventoryStore(":memory:")


@pytest.fixture()
def write_feed(tmp_path: Path) -> Callable[..., Path]:
    """Write rows as a TSV feed file and return its path."""
    def _write(rows: list[dict[str, str]], name: str = "feed.tsv") -> Path:
        path = tmp_path / name
        path.write_text(render_tsv(rows), encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def write_archive(tmp_path: Path) -> Callable[..., Path]:
    """Zip a TSV feed (as the partner ships it) and return the archive path."""
    def _write(
        rows: list[dict[str, str]],
        *,
        member: str = "master269000.tsv",
        name: str = "feed-1.zip",
    ) -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr(member, render_tsv(rows))
        return path
    return _write


@pytest.fixture()
def settings(tmp_path: Path) -> FeedSyncSettings:
    return FeedSyncSettings(
        store_url="sqlite:///:memory:",
        store_key="service-key",
        feed_username="feed-user",
        feed_password="feed-pass",
        publisher_id="269000",
        scratch_dir=str(tmp_path / "scratch"),
    )
