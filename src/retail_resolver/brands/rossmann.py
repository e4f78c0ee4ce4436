"""Rossmann: HTML product pages and a stock REST endpoint, both behind session cookies."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from ..domain.models import AvailabilityRecord, ProductDetails, Store, StoreAvailability
from ..domain.normalize import GERMAN_WEEKDAYS, empty_opening_hours, parse_price
from ..errors import NotFoundError, ParseError
from ..geo import ensure_valid_postal_code, is_postal_code
from ..logging import get_logger
from .base import CookieSessionAdapter, SessionRejected

LOG = get_logger("brands.rossmann")

PRODUCT_URL = "https://www.rossmann.de/de/p/{ean}"
STOCK_URL = "https://www.rossmann.de/storefinder/.rest/store/{store}?dan={dan}"
STORE_ONLY_TEXT = "Nur in der Filiale verfügbar"
LOCATIONS_URL = "https://www.rossmann.de/de/filialen/assets/data/locations.json"
LOCATION_MATCH_FIELDS = ("locality", "address", "name", "city")


def parse_stock(value: Any) -> StoreAvailability:
    """``"0"`` is out of stock, ``"+5"`` means five or more."""
    text = str(value if value is not None else "").strip()
    if not text:
        return StoreAvailability(available=None, quantity=0)
    if text == "0":
        return StoreAvailability(available=False, quantity=0)
    try:
        quantity = int(text.lstrip("+"))
    except ValueError:
        return StoreAvailability(available=True, quantity=None)
    return StoreAvailability(available=quantity > 0, quantity=quantity)


def _opening_hours(raw: Any) -> Dict[str, List[Dict[str, str]]]:
    """``{"Mo": [{openTime, closeTime}], ...}`` to the seven-day table."""
    table = empty_opening_hours()
    for key, ranges in (raw.items() if isinstance(raw, dict) else []):
        day = GERMAN_WEEKDAYS.get(key)
        if day is None or not isinstance(ranges, list):
            continue
        table[day] = [
            {"open": str(r["openTime"]), "close": str(r["closeTime"])}
            for r in ranges
            if isinstance(r, dict) and r.get("openTime") and r.get("closeTime")
        ]
    return table


def location_matches(location: Dict[str, Any], query: str) -> bool:
    """Exact postal code, or a case-insensitive exact match on locality, street, name or city."""
    query = query.strip()
    if is_postal_code(query) and str(location.get("postalCode") or "") == query:
        return True
    wanted = query.upper()
    return any(str(location.get(key) or "").upper() == wanted for key in LOCATION_MATCH_FIELDS)


def _store(location: Dict[str, Any]) -> Optional[Store]:
    code = location.get("storeCode")
    lat, lng = location.get("lat"), location.get("lng")
    if not code or not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return Store(
        store_id=str(code),
        store_number=str(code),
        brand="rossmann",
        address={
            "name": "Rossmann",
            "street": location.get("address"),
            "zip": location.get("postalCode"),
            "city": location.get("locality"),
            "regionName": location.get("region"),
        },
        coordinates=[float(lat), float(lng)],
        opening_hours=_opening_hours(location.get("openingHours")),
    )


class RossmannAdapter(CookieSessionAdapter):
    brand = "rossmann"
    cache_namespace = "RossmannCookies"
    cookie_domain = ".rossmann.de"
    session_url = "https://www.rossmann.de/de/"

    def _parse_product(self, html: str, final_url: str) -> ProductDetails:
        soup = BeautifulSoup(html, "html.parser")
        button = soup.select_one("button[data-cart-add]")
        if button is None:
            raise SessionRejected("product page lacks the add-to-cart marker")
        attrs = {k[len("data-"):]: v for k, v in button.attrs.items() if k.startswith("data-")}
        name = f"{attrs.get('product-brand', '')} {attrs.get('product-name', '')}"
        image = None
        for img in soup.find_all("img"):
            if img.get("alt") == name:
                image = img.get("data-src") or None
                break
        return ProductDetails(
            url=final_url,
            price=parse_price(attrs.get("product-price")),
            image_url=image,
            article_number=attrs.get("product-id") or None,
        )

    async def _product_page(self, url: str, store_only_is_missing: bool) -> ProductDetails:
        async def fetch(cookies: str) -> ProductDetails:
            response = await self._get(url, headers={"Accept": "text/html", "Cookie": cookies})
            html = response.text
            if store_only_is_missing and STORE_ONLY_TEXT in html:
                raise NotFoundError(f"[rossmann] {url} is only sold in stores")
            return self._parse_product(html, str(response.url))

        return await self._with_session(fetch, url=url)

    async def resolve_by_code(self, code: str) -> ProductDetails:
        return await self._product_page(PRODUCT_URL.format(ean=code), store_only_is_missing=True)

    async def fetch_product_details(self, reference: str) -> ProductDetails:
        return await self._product_page(reference, store_only_is_missing=False)

    async def _dan_for(self, reference: str) -> str:
        if not reference.startswith("http"):
            return reference
        details = await self.fetch_product_details(reference)
        if not details.article_number:
            raise ParseError(f"[rossmann] no article number on {reference}")
        return details.article_number

    async def check_store_availability(self, reference: str, store: Store) -> StoreAvailability:
        dan = await self._dan_for(reference)
        url = STOCK_URL.format(store=store.store_id, dan=dan)

        async def fetch(cookies: str) -> Dict[str, Any]:
            response = await self._get(url, headers={"Cookie": cookies})
            if "application/json" not in response.headers.get("content-type", ""):
                raise SessionRejected("stock endpoint answered with a non-JSON page")
            try:
                return response.json()
            except ValueError as e:
                raise SessionRejected("stock endpoint body is not JSON") from e

        data = await self._with_session(fetch, url=url, exhausted=ParseError)
        try:
            info = data["store"]["productInfo"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ParseError("[rossmann] stock payload lacks store.productInfo") from e
        return parse_stock(info.get("stock"))

    async def search_stores(self, query: str) -> List[Store]:
        """Filter the public branch list; it is served without session cookies."""
        if is_postal_code(query):
            await ensure_valid_postal_code(self.http, query)
        response = await self._get(LOCATIONS_URL)
        try:
            locations = response.json()
        except ValueError as e:
            raise ParseError("[rossmann] branch list is not JSON") from e
        if not isinstance(locations, dict):
            raise ParseError("[rossmann] branch list has an unexpected shape")
        stores: List[Store] = []
        for location in locations.values():
            if isinstance(location, dict) and location_matches(location, query):
                store = _store(location)
                if store is not None:
                    stores.append(store)
        LOG.info(f"[rossmann] {len(stores)} branch(es) match {query!r}")
        return stores

    async def check_stores(self, reference: str, stores: Sequence[Store]) -> List[AvailabilityRecord]:
        if not stores:
            return []
        return await super().check_stores(await self._dan_for(reference), stores)


__all__ = ["RossmannAdapter", "location_matches", "parse_stock"]
