#!/usr/bin/env python3
"""
field_mapper.py - Attribute normalization for cadastral features

Maps an arbitrary property bag onto the canonical parcel columns and coerces
values by column kind:

- ``parties``: dispute parties, always a list
- ``area``: square-meter areas, float or None
- ``date``: ISO ``YYYY-MM-DD`` string or None

Empty strings and bare dashes (the "no value" marker in most cadastral
exports) collapse to None. The mapper never raises.
"""

import json
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from .field_registry import field_kind, resolve_field_name

EMPTY_MARKERS = ("", "-")

# Numeric run left after thousands separators are dropped
_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?|-?\.\d+")

# Space used as a thousands separator, as in "1 500 m2"
_GROUP_SPACE = re.compile(r"(?<=\d)\s+(?=\d{3}(?!\d))")


def is_empty_marker(value: Any) -> bool:
    """True for the empty string or a bare dash, ignoring surrounding whitespace."""
    return isinstance(value, str) and value.strip() in EMPTY_MARKERS


def parse_parties(value: Any) -> List[Any]:
    """Normalize a dispute-parties value into a list.

    Older exports store the list as a JSON string; free-text names are wrapped
    into a one-element list.
    """
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        return []

    if value.strip() in ("[]", *EMPTY_MARKERS):
        return []

    try:
        parsed = json.loads(value)
    except ValueError:
        return [value]

    if isinstance(parsed, list):
        return parsed
    return [value]


def parse_area(value: Any) -> Optional[float]:
    """Parse an area value such as ``2500``, ``"1,487.5 m2"``, ``"1 500 m2"`` or ``"1500 m²"``."""
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if isinstance(value, str):
        match = _NUMBER_PATTERN.search(_GROUP_SPACE.sub("", value.replace(",", "")))
        if match is None:
            return None
        number = float(match.group())
        return number if math.isfinite(number) else None

    return None


def parse_date(value: Any) -> Optional[str]:
    """Parse a calendar date and return it as ``YYYY-MM-DD``.

    Numbers are read as epoch milliseconds. Timezone-aware values are
    converted to UTC before the date is taken.
    """
    if value is None or isinstance(value, bool) or is_empty_marker(value):
        return None

    try:
        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return None
            timestamp = pd.to_datetime(value, unit="ms", errors="coerce")
        elif isinstance(value, (str, date, datetime, pd.Timestamp)):
            timestamp = pd.to_datetime(value.strip() if isinstance(value, str) else value, errors="coerce")
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None

    if timestamp is None or pd.isna(timestamp):
        return None

    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC")

    return timestamp.strftime("%Y-%m-%d")


_COERCIONS = {
    "parties": parse_parties,
    "area": parse_area,
    "date": parse_date,
}


def map_field_names(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Map source attributes onto canonical parcel columns.

    Unknown attributes are kept under their lower-cased name. When two source
    names resolve to the same column, the later one wins.

    Args:
        properties: Raw feature properties

    Returns:
        Dictionary keyed by canonical column name
    """
    mapped: Dict[str, Any] = {}

    for key, value in properties.items():
        mapped_key = resolve_field_name(str(key))

        coerce = _COERCIONS.get(field_kind(mapped_key) or "")
        if coerce is not None:
            value = coerce(value)

        if is_empty_marker(value):
            value = None

        mapped[mapped_key] = value

    return mapped
