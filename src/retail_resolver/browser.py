"""Headless browser capability shared by the storefront adapters.

One Chromium instance per process, explicitly started and shut down by the
owner. Each lease gets a fresh browser context; concurrent leases are capped
by a semaphore so callers over the cap queue instead of spawning browsers.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .errors import AutomationTimeoutError, NetworkError, ParseError
from .logging import get_logger

LOG = get_logger("browser")

T = TypeVar("T")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


@dataclass
class InterceptedResponse:
    url: str
    status: int
    body: Any
    request_headers: Dict[str, str] = field(default_factory=dict)


async def _guarded(what: str, call: Awaitable[T]) -> T:
    try:
        return await call
    except PlaywrightError as e:
        raise NetworkError(f"{what} failed: {e}") from e


class BrowserPage:
    """Thin wrapper over a Playwright page; the only surface adapters use."""

    def __init__(self, page, context) -> None:
        self._page = page
        self._context = context

    async def navigate(self, url: str, wait_until: str = "domcontentloaded", timeout: float = 30.0) -> str:
        try:
            await self._page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise AutomationTimeoutError(f"Navigation to {url} timed out") from e
        except PlaywrightError as e:
            raise NetworkError(f"Navigation to {url} failed: {e}") from e
        try:
            return await self._page.content()
        except PlaywrightError as e:
            raise NetworkError(f"Reading page content of {url} failed: {e}") from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            if arg is None:
                return await self._page.evaluate(script)
            return await self._page.evaluate(script, arg)
        except PlaywrightError as e:
            raise NetworkError(f"Page script failed: {e}") from e

    async def intercept_json(
        self,
        predicate: Callable[[str], bool],
        trigger: Callable[[], Awaitable[Any]],
        timeout: float,
    ) -> InterceptedResponse:
        """Run ``trigger`` and wait for the first response whose URL satisfies ``predicate``.

        Raises AutomationTimeoutError when nothing matching arrives within
        ``timeout`` seconds, ParseError when the body is not JSON and
        NetworkError for any other browser failure.
        """
        try:
            async with self._page.expect_response(lambda r: predicate(r.url), timeout=timeout * 1000) as info:
                await trigger()
            response = await info.value
        except PlaywrightTimeoutError as e:
            raise AutomationTimeoutError(f"No matching response within {timeout:g}s") from e
        except PlaywrightError as e:
            raise NetworkError(f"Waiting for a matching response failed: {e}") from e

        try:
            body = await response.json()
            raw_headers = await response.request.all_headers()
        except (json.JSONDecodeError, ValueError) as e:
            raise ParseError(f"Intercepted response from {response.url} is not JSON") from e
        except PlaywrightError as e:
            raise NetworkError(f"Reading intercepted response from {response.url} failed: {e}") from e
        headers = {k.lower(): v for k, v in raw_headers.items()}
        return InterceptedResponse(url=response.url, status=response.status, body=body, request_headers=headers)

    async def submit_text(self, selector: str, text: str, delay: float = 0.1) -> None:
        """Type into the field matching ``selector`` key by key, then press Enter."""
        field_ = self._page.locator(selector)
        await _guarded(f"Typing into {selector}", field_.press_sequentially(text, delay=delay * 1000))
        await _guarded(f"Submitting {selector}", field_.press("Enter"))

    async def cookies(self) -> List[Dict[str, Any]]:
        return await _guarded("Reading cookies", self._context.cookies())

    async def cookie_header(self) -> str:
        return "; ".join(f"{c['name']}={c['value']}" for c in await self.cookies())

    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        await _guarded("Setting cookies", self._context.add_cookies(cookies))

    async def set_local_storage(self, values: Dict[str, str]) -> None:
        """Seed localStorage before any page script runs on the next navigation."""
        script = (
            "(() => { const v = %s; for (const [k, val] of Object.entries(v)) "
            "{ window.localStorage.setItem(k, val); } })();" % json.dumps(values)
        )
        await _guarded("Seeding localStorage", self._context.add_init_script(script))


class BrowserPool:
    def __init__(self, max_contexts: int = 4, headless: bool = True) -> None:
        self.max_contexts = max(1, int(max_contexts))
        self.headless = headless
        self._semaphore = asyncio.Semaphore(self.max_contexts)
        self._playwright = None
        self._browser = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        async with self._lock:
            if self._browser is not None:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless, args=_LAUNCH_ARGS)
            LOG.info(f"Browser pool started (max {self.max_contexts} contexts, headless={self.headless})")

    async def shutdown(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            LOG.info("Browser pool shut down")

    @asynccontextmanager
    async def page(self, user_agent: Optional[str] = USER_AGENT) -> AsyncIterator[BrowserPage]:
        if self._browser is None:
            raise RuntimeError("BrowserPool.start() must be awaited before leasing pages")
        async with self._semaphore:
            context = await _guarded(
                "Opening a browser context", self._browser.new_context(user_agent=user_agent, locale="de-DE")
            )
            try:
                page = await _guarded("Opening a page", context.new_page())
                yield BrowserPage(page, context)
            finally:
                try:
                    await context.close()
                except PlaywrightError as e:
                    LOG.warning(f"Closing browser context failed: {e}")


__all__ = ["BrowserPool", "BrowserPage", "InterceptedResponse", "USER_AGENT"]
