import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from ..logging import get_logger

_LOG = get_logger("normalize")

WEEKDAYS: Tuple[str, ...] = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def parse_price(val: Any) -> Optional[float]:
    """Parse storefront price text to a float rounded to cents.

    Handles '14,70', '14.70', '1.470,00', '2,99 €', plain numbers, etc.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return round(float(val), 2)
    s = str(val).replace("€", "").replace(" ", "").replace(" ", "").strip()
    if not s:
        return None
    has_dot = "." in s
    has_comma = "," in s
    if has_dot and has_comma:
        if re.search(r",\d{1,2}$", s):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        s = s.replace(",", ".") if re.search(r",\d{1,2}$", s) else s.replace(",", "")

    m = re.search(r"-?\d+(?:\.\d+)?", s)
    if not m:
        return None
    try:
        return float(round(Decimal(m.group(0)), 2))
    except InvalidOperation:
        _LOG.debug(f"Unparseable price text: {val!r}")
        return None


def empty_opening_hours() -> Dict[str, List[Dict[str, str]]]:
    return {day: [] for day in WEEKDAYS}


def normalize_opening_hours(raw: Any) -> Dict[str, List[Dict[str, str]]]:
    """Coerce an opening-hours mapping into the full seven-day table."""
    table = empty_opening_hours()
    if not isinstance(raw, dict):
        return table
    for day in WEEKDAYS:
        ranges = raw.get(day) or []
        if not isinstance(ranges, list):
            continue
        for r in ranges:
            if isinstance(r, dict) and r.get("open") and r.get("close"):
                table[day].append({"open": str(r["open"]), "close": str(r["close"])})
    return table


GERMAN_WEEKDAYS: Dict[str, str] = dict(zip(("Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"), WEEKDAYS))


def coerce_coordinates(raw: Any) -> Optional[List[float]]:
    """``{lat, lon}``/``{lat, lng}`` mappings or ``[lat, lon]`` sequences to a float list."""
    if isinstance(raw, dict):
        lat = raw.get("lat", raw.get("latitude"))
        lon = raw.get("lon", raw.get("lng", raw.get("longitude")))
        if isinstance(lat, (int, float)) and isinstance(lon, (int, float)):
            return [float(lat), float(lon)]
        return None
    if isinstance(raw, (list, tuple)):
        try:
            return [float(v) for v in raw]
        except (TypeError, ValueError):
            return None
    return None
