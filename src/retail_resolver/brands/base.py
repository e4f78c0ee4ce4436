"""Common storefront adapter contract and the shared session-cookie policy."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar

import httpx

from ..browser import BrowserPool
from ..cache import FOREVER_TTL, SessionCache
from ..config import ResolverConfig
from ..domain.models import AvailabilityRecord, ProductDetails, Store, StoreAvailability
from ..errors import NetworkError, NotFoundError, ResolverError
from ..logging import get_logger

LOG = get_logger("brands")

T = TypeVar("T")


class SessionRejected(ResolverError):
    """Raised by a fetch step when the response shows the session was not accepted."""


class BrandAdapter(ABC):
    brand: str = ""

    def __init__(
        self,
        http: httpx.AsyncClient,
        cache: SessionCache,
        browser: Optional[BrowserPool],
        config: ResolverConfig,
    ) -> None:
        self.http = http
        self.cache = cache
        self.browser = browser
        self.config = config

    @abstractmethod
    async def resolve_by_code(self, code: str) -> ProductDetails:
        """Find the product for an EAN; raises NotFoundError unless exactly one match exists."""

    @abstractmethod
    async def fetch_product_details(self, reference: str) -> ProductDetails:
        """Re-read price and image for a known product reference."""

    @abstractmethod
    async def check_store_availability(self, reference: str, store: Store) -> StoreAvailability:
        """Stock state of one product in one saved store."""

    @abstractmethod
    async def search_stores(self, query: str) -> List[Store]:
        """Storefront branches near a postal code or place name, ready to be saved."""

    def availability_reference(self, url: Optional[str], article_number: Optional[str]) -> Optional[str]:
        """Pick the reference ``check_store_availability`` expects."""
        return url

    async def check_stores(self, reference: str, stores: Sequence[Store]) -> List[AvailabilityRecord]:
        """Check every saved store concurrently; one failing store reports unknown stock."""

        async def _one(store: Store) -> AvailabilityRecord:
            try:
                result = await self.check_store_availability(reference, store)
            except ResolverError as e:
                LOG.warning(f"[{self.brand}] store {store.store_id} availability failed: {e}")
                return AvailabilityRecord(store_id=store.store_id, available=None, quantity=0)
            return AvailabilityRecord(store_id=store.store_id, available=result.available, quantity=result.quantity)

        return list(await asyncio.gather(*(_one(s) for s in stores)))

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http.get(url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"[{self.brand}] request to {url} failed: {e}") from e
        if response.status_code == 404:
            raise NotFoundError(f"[{self.brand}] {url} answered 404")
        if response.status_code >= 400:
            raise NetworkError(
                f"[{self.brand}] {url} answered HTTP {response.status_code}", status_code=response.status_code
            )
        return response

    def _require_browser(self) -> BrowserPool:
        if self.browser is None:
            raise RuntimeError(f"{self.brand} adapter needs a browser pool")
        return self.browser


def parse_cookie_header(header: str, domain: str) -> List[Dict[str, str]]:
    cookies: List[Dict[str, str]] = []
    for part in (header or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies.append({"name": name, "value": value, "domain": domain, "path": "/"})
    return cookies


class CookieSessionAdapter(BrandAdapter):
    """Adapter whose storefront only answers requests carrying browser-minted cookies.

    Cookies live in the session cache without expiry. When a response shows
    the cached session was rejected, the cookies are discarded, a browser
    mints fresh ones and the request is retried a bounded number of times.
    """

    cache_namespace: str = ""
    cookie_key: str = "cookies"
    cookie_domain: str = ""
    session_url: str = ""
    max_session_retries: int = 1

    def seed_cookie(self) -> Optional[str]:
        return None

    async def _acquire_cookies(self, url: Optional[str] = None) -> str:
        browser = self._require_browser()
        async with browser.page() as page:
            seed = self.seed_cookie()
            if seed:
                await page.set_cookies(parse_cookie_header(seed, self.cookie_domain))
            await page.navigate(url or self.session_url, wait_until="networkidle")
            return await page.cookie_header()

    def stored_cookies(self) -> Optional[str]:
        """Cached cookies, else the configured seed cookie, else None."""
        return self.cache.get(self.cache_namespace, self.cookie_key) or self.seed_cookie()

    async def session_cookies(self, fresh: bool = False, url: Optional[str] = None) -> str:
        if fresh:
            self.cache.delete(self.cache_namespace, self.cookie_key)
        else:
            stored = self.stored_cookies()
            if stored:
                return stored
        cookies = await self._acquire_cookies(url)
        self.cache.set(self.cache_namespace, self.cookie_key, cookies, ttl=FOREVER_TTL)
        self.cache.persist(self.cache_namespace)
        return cookies

    async def _with_session(
        self,
        fetch: Callable[[str], Awaitable[T]],
        url: Optional[str] = None,
        exhausted: Type[ResolverError] = NotFoundError,
    ) -> T:
        """Run ``fetch(cookies)``, renewing the session when it raises SessionRejected.

        After ``max_session_retries`` renewals the rejection is re-raised as ``exhausted``.
        Cookies minted for the first attempt count as a renewal already.
        """
        cookies = self.stored_cookies()
        attempt = 0
        if not cookies:
            cookies = await self.session_cookies(fresh=True, url=url)
            attempt = 1
        while True:
            try:
                return await fetch(cookies)
            except SessionRejected as e:
                if attempt >= self.max_session_retries:
                    raise exhausted(f"[{self.brand}] {e} (after {attempt} session renewal(s))") from e
                attempt += 1
                LOG.info(f"[{self.brand}] session rejected ({e}); acquiring fresh cookies")
                cookies = await self.session_cookies(fresh=True, url=url)


__all__ = ["BrandAdapter", "CookieSessionAdapter", "SessionRejected", "parse_cookie_header"]
