"""Müller: streamed search payload, JSON-LD product pages, browser-observed store stock."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from ..browser import USER_AGENT
from ..domain.models import ProductDetails, Store, StoreAvailability
from ..domain.normalize import coerce_coordinates, empty_opening_hours, parse_price
from ..errors import NotFoundError, ParseError
from ..geo import is_postal_code
from ..logging import get_logger
from .base import BrandAdapter

LOG = get_logger("brands.mueller")

SEARCH_URL = "https://www.mueller.de/search/?q={ean}"
SHOP_BASE = "https://mueller.de"
STOCK_BACKEND = "https://backend.prod.ecom.mueller.de/"
STOCK_OPERATION = "operationName=GetStoreStockForProduct"
STOCK_FIELD = "getStoreStockForProductV2"
STORE_STORAGE_KEY = "selectedStore"
STOREFINDER_URL = "https://www.mueller.de/storefinder/"
STOREFINDER_INPUT = 'input[placeholder="Ort/PLZ"]'
STORES_OPERATION = "operationName=GetStoresByIds"
STORES_FIELD = "getStoresByIds"

_STREAM_MARKER = "self.__next_f.push([1"
_STREAM_JOIN = '"])self.__next_f.push([1,"'


def stream_payload(html: str) -> str:
    """Concatenate the streamed page payload chunks into one unescaped text."""
    soup = BeautifulSoup(html, "html.parser")
    text = ""
    for script in soup.find_all("script"):
        content = script.string or script.get_text() or ""
        if _STREAM_MARKER in content:
            text += content.strip()
    return text.replace(_STREAM_JOIN, "").replace('\\"', '"')


def extract_products(text: str) -> Optional[List[Dict[str, Any]]]:
    """Return the first ``"products": [...]`` array found by bracket matching."""
    start = text.find('"products":')
    if start == -1:
        return None
    array_start = text.find("[", start)
    if array_start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(array_start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
        if in_string:
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                try:
                    products = json.loads(text[array_start : i + 1])
                except ValueError as e:
                    raise ParseError("[mueller] product array is not valid JSON") from e
                return products if isinstance(products, list) else None
    return None


def product_list_segment(text: str) -> Optional[str]:
    for segment in text.split('"components":'):
        if '"type":"product-list"' in segment:
            return segment
    return None


def json_ld_product(html: str) -> Optional[Dict[str, Any]]:
    product = None
    for script in BeautifulSoup(html, "html.parser").find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.get_text().strip())
        except ValueError as e:
            LOG.debug(f"Skipping invalid JSON-LD block: {e}")
            continue
        if isinstance(data, dict) and data.get("@type") == "Product":
            product = data
    return product


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _opening_hours(entries: Any) -> Dict[str, List[Dict[str, str]]]:
    table = empty_opening_hours()
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        day = str(entry.get("day") or "").capitalize()
        if day in table and entry.get("openingTime") and entry.get("closingTime"):
            table[day].append({"open": str(entry["openingTime"]), "close": str(entry["closingTime"])})
    return table


def _store(raw: Dict[str, Any]) -> Optional[Store]:
    coordinates = coerce_coordinates(raw.get("geoLocation"))
    if not raw.get("code") or coordinates is None:
        return None
    address = raw.get("address") if isinstance(raw.get("address"), dict) else {}
    company = raw.get("company") if isinstance(raw.get("company"), dict) else {}
    return Store(
        store_id=str(raw["code"]),
        store_number=str(raw["code"]),
        brand="mueller",
        address={
            "name": company.get("name"),
            "street": address.get("street"),
            "zip": address.get("zip"),
            "city": address.get("town"),
            "regionName": None,
        },
        coordinates=coordinates,
        phone=raw.get("phone") or None,
        opening_hours=_opening_hours(raw.get("openingHours")),
    )


class MuellerAdapter(BrandAdapter):
    brand = "mueller"

    async def resolve_by_code(self, code: str) -> ProductDetails:
        response = await self._get(SEARCH_URL.format(ean=quote(code)), headers={"User-Agent": USER_AGENT})
        html = response.text
        if f"Ihre Suche nach {code} ergab leider keine Treffer" in html:
            raise NotFoundError(f"[mueller] no search hits for {code}")
        segment = product_list_segment(stream_payload(html))
        products = extract_products(segment) if segment else None
        if not products or len(products) != 1:
            raise NotFoundError(f"[mueller] search for {code} returned {len(products or [])} products")
        path = products[0].get("path") if isinstance(products[0], dict) else None
        if not path:
            raise ParseError("[mueller] product entry has no path")
        return await self.fetch_product_details(f"{SHOP_BASE}{path}")

    async def fetch_product_details(self, reference: str) -> ProductDetails:
        response = await self._get(reference, headers={"User-Agent": USER_AGENT})
        product = json_ld_product(response.text)
        if product is None:
            raise ParseError(f"[mueller] no JSON-LD Product on {reference}")
        offer = _first(product.get("offers")) or {}
        sku = product.get("sku")
        return ProductDetails(
            url=reference,
            price=parse_price(offer.get("price") if isinstance(offer, dict) else None),
            image_url=_first(product.get("image")),
            article_number=str(sku) if sku is not None else None,
        )

    async def check_store_availability(self, reference: str, store: Store) -> StoreAvailability:
        browser = self._require_browser()
        async with browser.page() as page:
            await page.set_local_storage({STORE_STORAGE_KEY: store.store_id})
            intercepted = await page.intercept_json(
                lambda u: u.startswith(STOCK_BACKEND) and STOCK_OPERATION in u,
                lambda: page.navigate(reference, wait_until="domcontentloaded"),
                timeout=self.config.mueller_stock_timeout,
            )
        data = intercepted.body.get("data") if isinstance(intercepted.body, dict) else None
        if not isinstance(data, dict) or STOCK_FIELD not in data:
            raise ParseError(f"[mueller] stock response lacks {STOCK_FIELD}")
        value = data[STOCK_FIELD]
        # The storefront reports presence only, never a count.
        return StoreAvailability(available=None if value is None else bool(value), quantity=None)

    async def search_stores(self, query: str) -> List[Store]:
        """Run the storefinder search in a browser and read the stores it loads.

        A postal code query keeps only stores with that exact postal code
        unless none match.
        """
        browser = self._require_browser()
        async with browser.page() as page:
            await page.navigate(STOREFINDER_URL, wait_until="networkidle")
            intercepted = await page.intercept_json(
                lambda u: u.startswith(STOCK_BACKEND) and STORES_OPERATION in u,
                lambda: page.submit_text(STOREFINDER_INPUT, query.strip()),
                timeout=self.config.mueller_stock_timeout,
            )
        data = intercepted.body.get("data") if isinstance(intercepted.body, dict) else None
        raw_stores = data.get(STORES_FIELD) if isinstance(data, dict) else None
        if not isinstance(raw_stores, list):
            raise ParseError(f"[mueller] storefinder response lacks {STORES_FIELD}")
        stores = [s for s in (_store(r) for r in raw_stores if isinstance(r, dict)) if s is not None]
        if is_postal_code(query):
            same_zip = [s for s in stores if s.address.get("zip") == query.strip()]
            if same_zip:
                return same_zip
        return stores


__all__ = ["MuellerAdapter", "extract_products", "stream_payload", "json_ld_product"]
