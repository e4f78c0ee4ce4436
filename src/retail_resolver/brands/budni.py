"""Budni: HTML search and product pages under a market cookie, JSON stock endpoint."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from ..domain.models import ProductDetails, Store, StoreAvailability
from ..domain.normalize import GERMAN_WEEKDAYS, empty_opening_hours, parse_price
from ..errors import NotFoundError, ParseError
from ..geo import distance_km, geocode
from ..logging import get_logger
from .base import CookieSessionAdapter, SessionRejected

LOG = get_logger("brands.budni")

SHOP_BASE = "https://www.budni.de"
IMAGE_BASE = "https://budni.de"
SEARCH_URL = SHOP_BASE + "/sortiment/produkte?search={ean}"
STOCK_URL = SHOP_BASE + "/api/stocks/api/v1/Stocks/markets/{market}/article-id/{article}/status"
PRODUCT_PREFIX = "/sortiment/produkte/"

_PRICE = re.compile(r"(\d{1,3},\d{2}\s*€)")
_PRODUCT_ALT = re.compile(r"product", re.IGNORECASE)
_DAY_RULE = re.compile(r"^(\w{2})(?:\s*-\s*(\w{2}))?\s*:\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})$")


def article_id_from_url(url: str) -> str:
    return url.rstrip("/").split("/")[-1]


def parse_working_days(summary: str) -> Dict[str, List[Dict[str, str]]]:
    """``"Mo-Sa: 08:00-20:00, So: 10:00-18:00"`` to the seven-day table."""
    table = empty_opening_hours()
    days = list(GERMAN_WEEKDAYS)
    for rule in (summary or "").split(","):
        m = _DAY_RULE.match(rule.strip())
        if not m or m.group(1) not in GERMAN_WEEKDAYS:
            continue
        start, end, open_, close = m.groups()
        span = [start]
        if end in GERMAN_WEEKDAYS:
            span = days[days.index(start) : days.index(end) + 1]
        for day in span:
            table[GERMAN_WEEKDAYS[day]].append({"open": open_, "close": close})
    return table


def _market_store(market: Dict[str, Any]) -> Optional[Store]:
    contact = market.get("contact") if isinstance(market.get("contact"), dict) else {}
    lat, lon = contact.get("latitude"), contact.get("longitude")
    if market.get("id") is None or not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    return Store(
        store_id=str(market["id"]),
        store_number=str(market["id"]),
        brand="budni",
        address={
            "name": market.get("name"),
            "street": contact.get("streetAndNumber"),
            "zip": contact.get("zip"),
            "city": contact.get("city"),
            "regionName": None,
        },
        coordinates=[float(lat), float(lon)],
        opening_hours=parse_working_days(str(market.get("workingDaysSummary") or "")),
    )


class BudniAdapter(CookieSessionAdapter):
    brand = "budni"
    cache_namespace = "BudniCookies"
    cookie_domain = ".budni.de"
    session_url = SHOP_BASE + "/"

    def seed_cookie(self) -> Optional[str]:
        return self.config.budni_cookie or None

    def _headers(self, cookies: str) -> Dict[str, str]:
        return {"Cookie": cookies, "Accept": "text/html"}

    async def _search_links(self, ean: str) -> List[str]:
        url = SEARCH_URL.format(ean=ean)

        async def fetch(cookies: str) -> List[str]:
            response = await self._get(url, headers=self._headers(cookies))
            soup = BeautifulSoup(response.text, "html.parser")
            hrefs = [a.get("href") or "" for a in soup.find_all("a")]
            if not any(h.startswith("/sortiment") for h in hrefs):
                raise SessionRejected("search page carries no assortment navigation")
            links: List[str] = []
            for href in hrefs:
                if href.startswith(PRODUCT_PREFIX) and href not in links:
                    links.append(href)
            return links

        return await self._with_session(fetch, url=url)

    async def resolve_by_code(self, code: str) -> ProductDetails:
        links = await self._search_links(code)
        if len(links) != 1:
            raise NotFoundError(f"[budni] search for {code} returned {len(links)} distinct products")
        return await self.fetch_product_details(SHOP_BASE + links[0])

    async def fetch_product_details(self, reference: str) -> ProductDetails:
        cookies = await self.session_cookies(url=reference)
        response = await self._get(reference, headers=self._headers(cookies))
        html = response.text
        m = _PRICE.search(html)
        image = None
        for img in BeautifulSoup(html, "html.parser").find_all("img"):
            if img.get("alt") and _PRODUCT_ALT.search(img.get("alt")) and img.get("src"):
                image = IMAGE_BASE + img.get("src")
                break
        return ProductDetails(
            url=reference,
            price=parse_price(m.group(1)) if m else None,
            image_url=image,
            article_number=article_id_from_url(reference),
        )

    async def check_store_availability(self, reference: str, store: Store) -> StoreAvailability:
        article = article_id_from_url(reference) if reference.startswith("http") else reference
        response = await self._get(STOCK_URL.format(market=store.store_id, article=article))
        try:
            data: Any = response.json()
        except ValueError as e:
            raise ParseError("[budni] stock endpoint returned non-JSON") from e
        if not isinstance(data, dict) or "status" not in data:
            raise ParseError("[budni] stock payload lacks a status")
        available = data.get("status") == "inStock"
        try:
            quantity = int(data.get("quantity") or 0) if available else 0
        except (TypeError, ValueError) as e:
            raise ParseError(f"[budni] stock quantity {data.get('quantity')!r} is not a number") from e
        return StoreAvailability(available=available, quantity=quantity)

    async def search_stores(self, query: str) -> List[Store]:
        """The markets closest to the geocoded query, nearest first."""
        lat, lon = await geocode(self.http, query)
        response = await self._get(self.config.budni_markets_url)
        try:
            data: Any = response.json()
        except ValueError as e:
            raise ParseError("[budni] market list is not JSON") from e
        markets = data.get("markets") if isinstance(data, dict) else data
        if not isinstance(markets, list):
            raise ParseError("[budni] market list has an unexpected shape")
        stores = [s for s in (_market_store(m) for m in markets if isinstance(m, dict)) if s is not None]
        stores.sort(key=lambda s: distance_km(lat, lon, s.coordinates[0], s.coordinates[1]))
        return stores[: self.config.store_search_limit]


__all__ = ["BudniAdapter", "article_id_from_url", "parse_working_days"]
