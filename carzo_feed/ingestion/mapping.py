"""Map raw feed rows onto the stored vehicle schema."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from carzo_feed.constants import DEFAULT_TARGETING_RADIUS
from carzo_feed.ingestion.reader import RawFeedRecord
from carzo_feed.normalization import (
    optional_text,
    parse_bool_flag,
    parse_float,
    parse_int,
    parse_non_negative_int,
    split_image_urls,
)
from carzo_feed.normalization import (
    parse_price as _canonical_parse_price,
)

logger = logging.getLogger(__name__)


@dataclass
class VehicleRecord:
    """One row of the shared ``vehicles`` table, keyed by VIN."""
    vin: str
    dealer_id: str
    dealer_name: str
    year: int | None = None
    make: str | None = None
    model: str | None = None
    trim: str | None = None
    price: float = 0.0
    miles: int | None = None
    condition: str | None = None
    body_style: str | None = None
    primary_image_url: str = ""
    total_photos: int = 0
    transmission: str | None = None
    fuel_type: str | None = None
    drive_type: str | None = None
    exterior_color: str | None = None
    interior_color: str | None = None
    doors: int | None = None
    cylinders: int | None = None
    description: str | None = None
    options: str | None = None
    dealer_address: str | None = None
    dealer_city: str | None = None
    dealer_state: str | None = None
    dealer_zip: str | None = None
    dealer_vdp_url: str | None = None
    certified: bool = False
    latitude: float | None = None
    longitude: float | None = None
    dma: str | None = None
    targeting_radius: int = DEFAULT_TARGETING_RADIUS
    payout: float | None = None
    priority: int | None = None
    dol: int | None = None
    is_active: bool = True
    last_sync: str = ""

    def to_row(self) -> dict[str, Any]:
        return asdict(self)


# ── Field rules ─────────────────────────────────────────────────────

def parse_price(value: Any) -> float:
    """Price absence is stored as ``0.0``, unlike days-on-lot."""
    return _canonical_parse_price(value) or 0.0


def parse_targeting_radius(value: Any) -> int:
    radius = parse_int(value)
    return radius if radius is not None and radius > 0 else DEFAULT_TARGETING_RADIUS


def map_feed_record(
    raw: RawFeedRecord,
    *,
    synced_at: datetime | str | None = None,
) -> VehicleRecord | None:
    """Convert one feed row, or return ``None`` when it cannot be keyed.

    Only rows without a VIN are discarded; the VIN is the upsert key and is
    stored as delivered (trimmed, case untouched).  A missing dealer id is
    stored as ``""`` so the listing stays in the feed's VIN set.
    """
    vin = raw.vin.strip()
    if not vin:
        logger.debug("Discarding feed row without VIN (dealer_id=%r)", raw.dealer_id)
        return None
    dealer_id = raw.dealer_id.strip()

    if synced_at is None:
        synced_at = datetime.now(timezone.utc)
    last_sync = synced_at if isinstance(synced_at, str) else synced_at.isoformat()

    images = split_image_urls(raw.image_urls)

    return VehicleRecord(
        vin=vin,
        year=parse_int(raw.year),
        make=optional_text(raw.make),
        model=optional_text(raw.model),
        trim=optional_text(raw.trim),
        price=parse_price(raw.price),
        miles=parse_int(raw.miles),
        condition=optional_text(raw.condition),
        body_style=optional_text(raw.body_style),
        primary_image_url=images[0] if images else "",
        total_photos=len(images),
        transmission=optional_text(raw.transmission),
        fuel_type=optional_text(raw.fuel_type),
        drive_type=optional_text(raw.drive),
        exterior_color=optional_text(raw.exterior_color),
        interior_color=optional_text(raw.interior_color),
        doors=parse_int(raw.doors),
        cylinders=parse_int(raw.cylinders),
        description=optional_text(raw.description),
        options=optional_text(raw.options),
        dealer_id=dealer_id,
        dealer_name=raw.dealer_name.strip(),
        dealer_address=optional_text(raw.address),
        dealer_city=optional_text(raw.city),
        dealer_state=optional_text(raw.state),
        dealer_zip=optional_text(raw.zip),
        dealer_vdp_url=optional_text(raw.url),
        certified=parse_bool_flag(raw.certified),
        latitude=parse_float(raw.latitude),
        longitude=parse_float(raw.longitude),
        dma=optional_text(raw.dma),
        targeting_radius=parse_targeting_radius(raw.radius),
        payout=parse_float(raw.payout),
        priority=parse_int(raw.priority),
        dol=parse_non_negative_int(raw.dol),
        is_active=True,
        last_sync=last_sync,
    )
