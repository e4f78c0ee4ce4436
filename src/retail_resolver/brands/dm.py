"""dm: public JSON endpoints for product data and stock, browser-captured headers for search."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from ..browser import USER_AGENT
from ..cache import DEFAULT_TTL
from ..domain.models import MatchCandidate, ProductDetails, Store, StoreAvailability
from ..domain.normalize import WEEKDAYS, coerce_coordinates, empty_opening_hours, parse_price
from ..errors import ParseError
from ..geo import ensure_valid_postal_code, geocode, is_postal_code
from ..logging import get_logger
from .base import BrandAdapter

LOG = get_logger("brands.dm")

GTIN_URL = "https://products.dm.de/product/DE/products/detail/gtin/{gtin}"
AVAILABILITY_URL = "https://products.dm.de/availability/api/v1/detail/DE/{dan}"
SEARCH_API = "https://product-search.services.dmtech.com/de/search"
STORES_NEARBY_URL = "https://store-data-service.services.dmtech.com/stores/nearby/{lat}%2C{lon}/{count}"
STORE_FIELDS = "storeId,countryCode,storeNumber,storeUrlPath,openingHours,phone,address,location"
SHOP_BASE = "https://www.dm.de"

SEARCH_CACHE = "dmReceiptsData"
SEARCH_HEADER_KEY = "header"

_GTIN_IN_URL = re.compile(r"-p(\d{8,14})\.html")
_QUANTITY = re.compile(r"Verfügbar\s+\((\d+)\s+Stück\)")


def search_url(query: str, window: Tuple[int, int]) -> str:
    low, high = window
    return (
        f"{SEARCH_API}?query={quote(query)}&searchProviderType=dm-products"
        f"&price.value.from={low}&price.value.to={high}"
    )


def _candidate(raw: Dict[str, Any]) -> MatchCandidate:
    price_text = (((raw.get("tileData") or {}).get("price") or {}).get("price") or {}).get("current") or {}
    return MatchCandidate(
        title=str(raw.get("title") or ""),
        price=parse_price(price_text.get("value")),
        brand=str(raw.get("brandName") or ""),
        code=str(raw["gtin"]) if raw.get("gtin") is not None else None,
        raw=raw,
    )


def _opening_hours(entries: Any) -> Dict[str, List[Dict[str, str]]]:
    """``[{weekDay: 1..7, timeRanges: [{opening, closing}]}]`` to the seven-day table."""
    table = empty_opening_hours()
    for entry in entries if isinstance(entries, list) else []:
        day = entry.get("weekDay") if isinstance(entry, dict) else None
        if not isinstance(day, int) or not 1 <= day <= 7:
            continue
        table[WEEKDAYS[day - 1]] = [
            {"open": str(r["opening"]), "close": str(r["closing"])}
            for r in entry.get("timeRanges") or []
            if isinstance(r, dict) and r.get("opening") and r.get("closing")
        ]
    return table


def _store(raw: Dict[str, Any]) -> Optional[Store]:
    coordinates = coerce_coordinates(raw.get("location"))
    if not raw.get("storeId") or coordinates is None:
        return None
    address = raw.get("address")
    return Store(
        store_id=str(raw["storeId"]),
        store_number=str(raw.get("storeNumber") or ""),
        brand="dm",
        address=address if isinstance(address, dict) else {},
        coordinates=coordinates,
        phone=raw.get("phone") or None,
        opening_hours=_opening_hours(raw.get("openingHours")),
    )


class DmAdapter(BrandAdapter):
    brand = "dm"

    async def product_json(self, gtin: str) -> Dict[str, Any]:
        response = await self._get(GTIN_URL.format(gtin=gtin))
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"[dm] GTIN endpoint returned non-JSON for {gtin}") from e
        if not isinstance(data, dict):
            raise ParseError(f"[dm] unexpected GTIN payload for {gtin}")
        return data

    @staticmethod
    def _details(data: Dict[str, Any]) -> ProductDetails:
        images = data.get("images") or []
        image = images[0].get("src") if images and isinstance(images[0], dict) else None
        self_path = data.get("self")
        return ProductDetails(
            url=f"{SHOP_BASE}{self_path}" if self_path else None,
            price=parse_price((data.get("metadata") or {}).get("price")),
            image_url=image,
            article_number=str(data["dan"]) if data.get("dan") is not None else None,
        )

    async def resolve_by_code(self, code: str) -> ProductDetails:
        return self._details(await self.product_json(code))

    async def fetch_product_details(self, reference: str) -> ProductDetails:
        m = _GTIN_IN_URL.search(reference)
        if m:
            gtin = m.group(1)
        elif reference.isdigit():
            gtin = reference
        else:
            raise ParseError(f"[dm] cannot derive a GTIN from {reference!r}")
        return self._details(await self.product_json(gtin))

    def availability_reference(self, url: Optional[str], article_number: Optional[str]) -> Optional[str]:
        return article_number

    async def check_store_availability(self, reference: str, store: Store) -> StoreAvailability:
        response = await self._get(
            AVAILABILITY_URL.format(dan=reference),
            params={"pickupStoreId": store.store_id},
            headers={"referer": f"{SHOP_BASE}/", "user-agent": USER_AGENT},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError("[dm] availability endpoint returned non-JSON") from e
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise ParseError("[dm] availability payload has no rows")
        row = rows[1] if len(rows) > 1 and isinstance(rows[1], dict) else {}
        quantity = 0
        for text in (row.get("text"), row.get("subText")):
            m = _QUANTITY.search(text or "")
            if m:
                quantity = int(m.group(1))
                break
        return StoreAvailability(available=row.get("icon") == "GREEN", quantity=quantity)

    async def lookup_identity(self, code: str) -> Dict[str, str]:
        title = (await self.product_json(code)).get("title") or {}
        return {"name": title.get("headline") or "Unknown", "brand": title.get("brand") or "Unknown"}

    async def search_stores(self, query: str) -> List[Store]:
        if is_postal_code(query):
            await ensure_valid_postal_code(self.http, query)
        lat, lon = await geocode(self.http, query)
        response = await self._get(
            STORES_NEARBY_URL.format(lat=lat, lon=lon, count=self.config.store_search_limit),
            params={"fields": STORE_FIELDS},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError("[dm] store search returned non-JSON") from e
        raw_stores = data.get("stores") if isinstance(data, dict) else None
        if not isinstance(raw_stores, list):
            raise ParseError("[dm] store search payload has no stores")
        stores = [s for s in (_store(r) for r in raw_stores if isinstance(r, dict)) if s is not None]
        LOG.info(f"[dm] {len(stores)} store(s) near {query!r}")
        return stores

    # --------------- product search (receipt matching) ---------------
    async def search_cached(self, query: str, window: Tuple[int, int]) -> Optional[List[MatchCandidate]]:
        """Query the search API with previously captured browser headers.

        Returns None when no headers are cached; request failures yield an empty list.
        """
        headers = self.cache.get(SEARCH_CACHE, SEARCH_HEADER_KEY)
        if not headers:
            return None
        try:
            response = await self.http.get(search_url(query, window), headers=headers)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            LOG.warning(f"dm search with cached headers failed: {e}")
            return []
        products = body.get("products") if isinstance(body, dict) else None
        return [_candidate(p) for p in products or [] if isinstance(p, dict)]

    async def search_live(self, query: str, window: Tuple[int, int]) -> List[MatchCandidate]:
        """Load the search in a real browser, keep its request headers, return its products."""
        url = search_url(query, window)
        browser = self._require_browser()
        async with browser.page() as page:
            intercepted = await page.intercept_json(
                lambda u: u.startswith(f"{SEARCH_API}?query"),
                lambda: page.navigate(url, wait_until="networkidle"),
                timeout=self.config.dm_search_timeout,
            )
        body = intercepted.body if isinstance(intercepted.body, dict) else {}
        products = body.get("products")
        if not isinstance(products, list):
            raise ParseError("[dm] intercepted search response has no products")
        self.cache.set(SEARCH_CACHE, SEARCH_HEADER_KEY, intercepted.request_headers, ttl=DEFAULT_TTL)
        self.cache.persist(SEARCH_CACHE)
        return [_candidate(p) for p in products if isinstance(p, dict)]


__all__ = ["DmAdapter", "search_url"]
