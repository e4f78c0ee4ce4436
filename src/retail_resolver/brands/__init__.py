from __future__ import annotations

from typing import Dict, Optional, Sequence, Type

import httpx

from ..browser import BrowserPool
from ..cache import SessionCache
from ..config import ResolverConfig
from .base import BrandAdapter, CookieSessionAdapter, SessionRejected
from .budni import BudniAdapter
from .dm import DmAdapter
from .mueller import MuellerAdapter
from .rossmann import RossmannAdapter

ADAPTER_TYPES: Dict[str, Type[BrandAdapter]] = {
    "dm": DmAdapter,
    "rossmann": RossmannAdapter,
    "mueller": MuellerAdapter,
    "budni": BudniAdapter,
}


def build_adapters(
    http: httpx.AsyncClient,
    cache: SessionCache,
    browser: Optional[BrowserPool],
    config: ResolverConfig,
    brands: Optional[Sequence[str]] = None,
) -> Dict[str, BrandAdapter]:
    """Instantiate one adapter per brand, all brands known when ``brands`` is None."""
    names = list(brands) if brands is not None else list(ADAPTER_TYPES)
    return {name: ADAPTER_TYPES[name](http, cache, browser, config) for name in names if name in ADAPTER_TYPES}


__all__ = [
    "ADAPTER_TYPES",
    "BrandAdapter",
    "BudniAdapter",
    "CookieSessionAdapter",
    "DmAdapter",
    "MuellerAdapter",
    "RossmannAdapter",
    "SessionRejected",
    "build_adapters",
]
