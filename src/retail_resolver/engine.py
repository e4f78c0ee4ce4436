"""Wiring of the resolver components with an explicit start/shutdown lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from .brands import build_adapters
from .brands.base import BrandAdapter
from .brands.dm import DmAdapter
from .browser import USER_AGENT, BrowserPool
from .cache import SessionCache
from .config import ResolverConfig, load_config
from .db import ResolverDatabase
from .logging import get_logger
from .orchestrator import ArticleLifecycleManager, AvailabilityOrchestrator, IdentityLookup
from .receipts import CodeLookupStrategy, ReceiptMatcher, SearchMatchStrategy, TokenCorrector
from .receipts.matcher import MatchStrategy
from .stores import SettingsStore, StoreDirectory

LOG = get_logger("engine")


@dataclass
class ResolverEngine:
    config: ResolverConfig
    db: ResolverDatabase
    cache: SessionCache
    http: httpx.AsyncClient
    browser: Optional[BrowserPool]
    adapters: Dict[str, BrandAdapter]
    stores: StoreDirectory
    settings: SettingsStore
    orchestrator: AvailabilityOrchestrator
    articles: ArticleLifecycleManager
    lookup: IdentityLookup
    receipts: ReceiptMatcher

    async def start(self) -> None:
        if self.browser is not None:
            await self.browser.start()
        LOG.info(f"Resolver engine started (brands: {self.settings.brands()})")

    async def shutdown(self) -> None:
        if self.browser is not None:
            await self.browser.shutdown()
        await self.http.aclose()
        LOG.info("Resolver engine stopped")


def build_engine(
    config: Optional[ResolverConfig] = None,
    *,
    http: Optional[httpx.AsyncClient] = None,
    browser: Optional[BrowserPool] = None,
    with_browser: bool = True,
) -> ResolverEngine:
    cfg = config or load_config()
    db = ResolverDatabase(cfg.db_path)
    cache = SessionCache(cfg.cache_dir)
    client = http or httpx.AsyncClient(
        timeout=cfg.http_timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT, "Accept-Language": "de-DE,de;q=0.9"},
    )
    pool = browser
    if pool is None and with_browser:
        pool = BrowserPool(max_contexts=cfg.browser_max_contexts, headless=cfg.browser_headless)

    adapters = build_adapters(client, cache, pool, cfg)
    stores = StoreDirectory(db, limit_per_brand=cfg.store_limit_per_brand)
    settings = SettingsStore(db, default_brands=cfg.brands)
    orchestrator = AvailabilityOrchestrator(adapters, stores, settings, call_timeout=cfg.adapter_call_timeout)
    articles = ArticleLifecycleManager(
        db,
        orchestrator,
        price_threshold_days=cfg.price_threshold_days,
        availability_threshold_days=cfg.availability_threshold_days,
    )
    dm = adapters.get("dm")
    lookup = IdentityLookup(db, client, dm if isinstance(dm, DmAdapter) else None)

    corrector = TokenCorrector.bundled(
        index_threshold=cfg.matcher.dictionary_index_threshold,
        accept_score=cfg.matcher.dictionary_accept_score,
    )
    strategies: Dict[str, MatchStrategy] = {"rossmann": CodeLookupStrategy(lookup)}
    if isinstance(dm, DmAdapter):
        strategies["dm"] = SearchMatchStrategy(dm, corrector, cfg.matcher)
    receipts = ReceiptMatcher(strategies)

    return ResolverEngine(
        config=cfg,
        db=db,
        cache=cache,
        http=client,
        browser=pool,
        adapters=adapters,
        stores=stores,
        settings=settings,
        orchestrator=orchestrator,
        articles=articles,
        lookup=lookup,
        receipts=receipts,
    )


__all__ = ["ResolverEngine", "build_engine"]
