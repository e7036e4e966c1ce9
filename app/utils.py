"""Utility helpers for the DramaBrowse core."""

from __future__ import annotations

import math
import re
import time
import unicodedata
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

Clock = Callable[[], float]


def system_clock() -> float:
    """Return the current wall-clock time in epoch seconds."""

    return time.time()


def to_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def slugify(value: str) -> str:
    """Return a URL-friendly slug."""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower()


def first_present(data: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the first value among ``keys`` that is neither missing nor empty."""

    for key in keys:
        value = data.get(key)
        if value is None or value == "" or value == [] or value == {}:
            continue
        return value
    return None


def coerce_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            number = float(match.group(0))
            return int(number) if math.isfinite(number) else default
    return default


def coerce_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return default
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    return number if math.isfinite(number) else default


def coerce_bool(value: Any) -> bool:
    """Interpret upstream truthiness, which arrives as bools, 0/1 or strings."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "y"}
    return False


def parse_year(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value if 1900 <= value <= 2100 else None
    if not value:
        return None
    match = re.search(r"(19|20|21)\d{2}", str(value))
    if not match:
        return None
    return int(match.group(0))


def same_id(left: Any, right: Any) -> bool:
    """Compare identifiers that upstreams send as either numbers or strings."""

    if left is None or right is None:
        return False
    return str(left).strip() == str(right).strip()
