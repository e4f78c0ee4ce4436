"""Place-name geocoding, German postal code checks and great-circle distance for store search."""

from __future__ import annotations

import math
import re
from typing import Tuple

import httpx

from .errors import NetworkError, NotFoundError, ParseError
from .logging import get_logger

LOG = get_logger("geo")

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
POSTAL_CODE_URL = "https://api.zippopotam.us/de/{code}"
GEO_USER_AGENT = "retail-resolver/0.1"
EARTH_RADIUS_KM = 6371.0

_POSTAL_CODE = re.compile(r"^\d{5}$")


def is_postal_code(query: str) -> bool:
    return bool(_POSTAL_CODE.match((query or "").strip()))


async def ensure_valid_postal_code(http: httpx.AsyncClient, code: str) -> None:
    """Raise ValueError when a five digit query is not a known German postal code."""
    try:
        response = await http.get(POSTAL_CODE_URL.format(code=code.strip()))
    except httpx.HTTPError as e:
        raise NetworkError(f"Postal code check for {code} failed: {e}") from e
    if response.status_code == 404:
        raise ValueError(f"Invalid postal code: {code}")
    if response.status_code >= 400:
        raise NetworkError(f"Postal code service answered HTTP {response.status_code}", status_code=response.status_code)


async def geocode(http: httpx.AsyncClient, query: str) -> Tuple[float, float]:
    """Resolve a postal code or place name to ``(lat, lon)`` with the first Nominatim hit."""
    try:
        response = await http.get(
            NOMINATIM_URL,
            params={"q": query.strip(), "format": "json", "limit": 1},
            headers={"User-Agent": GEO_USER_AGENT},
        )
    except httpx.HTTPError as e:
        raise NetworkError(f"Geocoding {query!r} failed: {e}") from e
    if response.status_code >= 400:
        raise NetworkError(f"Geocoder answered HTTP {response.status_code}", status_code=response.status_code)
    try:
        hits = response.json()
    except ValueError as e:
        raise ParseError("Geocoder returned non-JSON") from e
    if not isinstance(hits, list) or not hits:
        raise NotFoundError(f"Location {query!r} not found")
    try:
        lat, lon = float(hits[0]["lat"]), float(hits[0]["lon"])
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Geocoder hit for {query!r} has no coordinates") from e
    LOG.debug(f"Geocoded {query!r} to {lat:.5f},{lon:.5f}")
    return lat, lon


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


__all__ = ["distance_km", "ensure_valid_postal_code", "geocode", "is_postal_code"]
