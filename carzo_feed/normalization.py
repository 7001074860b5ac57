"""Shared canonical parsing functions for feed values.

Single source of truth, imported by ``ingestion.mapping`` and the tests that
pin the per-field absence rules.  Every helper accepts ``None`` because a short
feed row leaves trailing columns undefined.
"""

from __future__ import annotations

import math
from typing import Any

from carzo_feed.constants import MAX_STORED_INT, TRUE_FLAG_VALUES


def clean_numeric_string(raw: str) -> str:
    """Keep only digits, ``'.'``, and ``'-'``."""
    return "".join(c for c in raw if c.isdigit() or c in {".", "-"})


def parse_bool_flag(value: Any) -> bool:
    """``True`` only for ``true``/``1``/``yes`` in any case; everything else is ``False``."""
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return False
    return value.strip().lower() in TRUE_FLAG_VALUES


def parse_non_negative_int(value: Any) -> int | None:
    """Parse a count where ``0`` is meaningful.

    ``"0"`` returns ``0``.  Empty, non-numeric, decimal, negative and
    out-of-range strings return ``None`` so "unknown" never collapses into zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= MAX_STORED_INT else None
    if isinstance(value, str):
        stripped = value.strip()
        # isdigit() alone also accepts superscripts and other non-ASCII digits.
        if not stripped.isascii() or not stripped.isdigit():
            return None
        try:
            return _bounded(int(stripped))
        except ValueError:
            # Longer than the interpreter's int-from-str digit limit.
            return None
    return None


def _bounded(value: int) -> int | None:
    return value if -MAX_STORED_INT <= value <= MAX_STORED_INT else None


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


def parse_price(value: Any) -> float | None:
    """Best-effort price parsing.  Returns ``None`` for unparseable or non-finite input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _finite(float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        cleaned = clean_numeric_string(stripped)
        if not cleaned:
            return None
        try:
            return _finite(float(cleaned))
        except ValueError:
            return None
    return None


def parse_int(value: Any) -> int | None:
    """Best-effort integer parsing.

    Returns ``None`` for unparseable input and for values outside the store's
    INT range.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _bounded(value)
    if isinstance(value, float):
        return _bounded(int(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        parsed = parse_price(stripped)
        if parsed is None:
            return None
        return _bounded(int(parsed))
    return None


def parse_float(value: Any) -> float | None:
    """Best-effort float parsing that preserves sign (for lat/lng).

    ``nan`` and ``inf`` spellings return ``None``; they are not valid JSON.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _finite(float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return _finite(float(stripped))
        except ValueError:
            return None
    return None


def optional_text(value: Any) -> str | None:
    """Trimmed text, or ``None`` when the feed left the cell empty."""
    if value is None:
        return None
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or None


def split_image_urls(value: Any) -> list[str]:
    """Split the comma-separated image list, dropping blank entries."""
    if not value or not isinstance(value, str):
        return []
    return [url.strip() for url in value.split(",") if url.strip()]
