"""Normalization helpers for free-text legacy service data.

Handles whitespace, slugs, category coercion and lenient price parsing.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Any

from config.service_categories import BACKFILL_PRICE_TYPES, FALLBACK_CATEGORY, SERVICE_CATEGORIES

logger = logging.getLogger(__name__)

# Leading numeric prefix, the way a browser's parseFloat reads "1500 KES"
_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def slugify(text: str) -> str:
    """Lower-case and join words with dashes: "Appliance Repair" -> "appliance-repair"."""
    return re.sub(r'\s+', '-', text.strip().lower())


def title_case_first(text: str) -> str:
    """Upper-case the first character only: "plumbing" -> "Plumbing"."""
    text = normalize_whitespace(text)
    return text[:1].upper() + text[1:]


def coerce_category(raw: Any, fallback: str = FALLBACK_CATEGORY) -> str:
    """Map a legacy category onto the allowed catalog set.

    Args:
        raw: Category as found in legacy data (any type)
        fallback: Category used when ``raw`` is not recognized

    Returns:
        A member of SERVICE_CATEGORIES
    """
    if not isinstance(raw, str) or not raw.strip():
        return fallback

    slug = slugify(raw)
    if slug in SERVICE_CATEGORIES:
        return slug

    logger.debug(f"Category {raw!r} not in catalog, using {fallback!r}")
    return fallback


def parse_price(value: Any) -> float | None:
    """Parse a legacy price value.

    Accepts numbers and numeric strings ("1500", "1,500", "1500 KES").
    Returns None for anything unparseable, including booleans and NaN.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value.replace(",", ""))
        if match:
            return float(match.group(0))

    return None


def coerce_price_type(value: Any, default: str = "hourly") -> str:
    """Return ``value`` if it is a price type legacy data may produce, else ``default``."""
    if isinstance(value, str) and value.strip().lower() in BACKFILL_PRICE_TYPES:
        return value.strip().lower()
    return default
