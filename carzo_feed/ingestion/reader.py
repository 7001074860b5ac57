"""Streaming reader for the tab-delimited partner feed.

The feed is messy: quotes are literal data, and rows sometimes carry more or
fewer cells than the header.  Both cases are absorbed row by row so one bad
line never aborts a feed of thousands.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from carzo_feed.errors import ParseError

logger = logging.getLogger(__name__)

_FIELD_SIZE_LIMIT = 16 * 1024 * 1024


@dataclass(frozen=True)
class RawFeedRecord:
    """One feed row, every value still a string exactly as delivered."""
    vin: str = ""
    year: str = ""
    make: str = ""
    model: str = ""
    trim: str = ""
    price: str = ""
    miles: str = ""
    condition: str = ""
    body_style: str = ""
    image_urls: str = ""
    transmission: str = ""
    fuel_type: str = ""
    drive: str = ""
    exterior_color: str = ""
    interior_color: str = ""
    doors: str = ""
    cylinders: str = ""
    description: str = ""
    options: str = ""
    dealer_id: str = ""
    dealer_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    url: str = ""
    certified: str = ""
    latitude: str = ""
    longitude: str = ""
    dma: str = ""
    radius: str = ""
    payout: str = ""
    priority: str = ""
    dol: str = ""


# Feed header -> RawFeedRecord field.  Header lookup is case-insensitive.
FEED_COLUMNS: dict[str, str] = {
    "VIN": "vin",
    "Year": "year",
    "Make": "make",
    "Model": "model",
    "Trim": "trim",
    "Price": "price",
    "Miles": "miles",
    "Condition": "condition",
    "BodyStyle": "body_style",
    "ImageUrls": "image_urls",
    "Transmission": "transmission",
    "FuelType": "fuel_type",
    "Drive": "drive",
    "ExteriorColor": "exterior_color",
    "InteriorColor": "interior_color",
    "Doors": "doors",
    "Cylinders": "cylinders",
    "Description": "description",
    "Options": "options",
    "DealerId": "dealer_id",
    "DealerName": "dealer_name",
    "Address": "address",
    "City": "city",
    "State": "state",
    "Zip": "zip",
    "Url": "url",
    "Certified": "certified",
    "Latitude": "latitude",
    "Longitude": "longitude",
    "Dma": "dma",
    "Radius": "radius",
    "Payout": "payout",
    "Priority": "priority",
    "Dol": "dol",
}
_COLUMN_LOOKUP = {header.lower(): name for header, name in FEED_COLUMNS.items()}


def _resolve_header(header: list[str]) -> list[tuple[int, str]]:
    """Map header positions to record fields, first occurrence wins."""
    resolved: list[tuple[int, str]] = []
    seen: set[str] = set()
    for index, column in enumerate(header):
        name = _COLUMN_LOOKUP.get(column.strip().lower())
        if name and name not in seen:
            seen.add(name)
            resolved.append((index, name))
    return resolved


def record_from_cells(cells: list[str], columns: list[tuple[int, str]]) -> RawFeedRecord:
    """Best-effort assignment: missing cells become ``""``, extra cells are dropped."""
    width = len(cells)
    values = {
        name: cells[index].strip() if index < width else ""
        for index, name in columns
    }
    return RawFeedRecord(**values)


def iter_feed_records(path: str | Path) -> Iterator[RawFeedRecord]:
    """Lazily yield one :class:`RawFeedRecord` per data row.

    Raises :class:`ParseError` when the file cannot be opened or read, has no
    header, or the header lacks a VIN column.
    """
    if csv.field_size_limit() < _FIELD_SIZE_LIMIT:
        csv.field_size_limit(_FIELD_SIZE_LIMIT)

    try:
        fh = open(path, newline="", encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        raise ParseError(f"Could not open feed file {path}: {exc}") from exc

    with fh:
        reader = csv.reader(fh, delimiter="\t", quoting=csv.QUOTE_NONE)
        try:
            header = next(reader, None)
        except (csv.Error, OSError) as exc:
            raise ParseError(f"Could not read feed header: {exc}") from exc
        if not header:
            raise ParseError(f"Feed file {Path(path).name} is empty")

        columns = _resolve_header(header)
        if "vin" not in {name for _, name in columns}:
            raise ParseError(
                "Feed header has no VIN column",
                details={"header": header},
            )

        while True:
            try:
                cells = next(reader)
            except StopIteration:
                return
            except csv.Error as exc:
                logger.warning("Skipping unreadable feed line %d: %s", reader.line_num, exc)
                continue
            except OSError as exc:
                raise ParseError(f"Feed stream failed at line {reader.line_num}: {exc}") from exc
            if not any(cell.strip() for cell in cells):
                continue
            yield record_from_cells(cells, columns)

