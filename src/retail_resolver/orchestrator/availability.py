"""Concurrent fan-out over the configured storefront adapters with per-brand fault isolation."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from ..brands.base import BrandAdapter
from ..domain.models import AvailabilityRecord, ProductDetails
from ..errors import NotFoundError
from ..logging import get_logger
from ..stores import SettingsStore, StoreDirectory

LOG = get_logger("orchestrator-availability")

T = TypeVar("T")


class AvailabilityOrchestrator:
    """Runs one request per brand concurrently and keys results by brand.

    A failing, slow or missing adapter yields that brand's neutral default
    (empty details, empty availability list); siblings are unaffected.
    """

    def __init__(
        self,
        adapters: Mapping[str, BrandAdapter],
        stores: StoreDirectory,
        settings: Optional[SettingsStore] = None,
        call_timeout: float = 60.0,
    ) -> None:
        self.adapters = dict(adapters)
        self.stores = stores
        self.settings = settings
        self.call_timeout = call_timeout

    def active_brands(self, brands: Optional[Sequence[str]] = None) -> List[str]:
        if brands is None:
            brands = self.settings.brands() if self.settings is not None else list(self.adapters)
        return list(brands)

    async def _isolated(
        self,
        brand: str,
        operation: str,
        call: Callable[[BrandAdapter], Awaitable[T]],
        default: Callable[[], T],
    ) -> T:
        adapter = self.adapters.get(brand)
        if adapter is None:
            LOG.warning(f"[{brand}] {operation}: no adapter configured")
            return default()
        try:
            return await asyncio.wait_for(call(adapter), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            LOG.warning(f"[{brand}] {operation} exceeded {self.call_timeout:g}s")
        except NotFoundError as e:
            LOG.info(f"[{brand}] {operation}: {e}")
        except Exception as e:
            LOG.warning(f"[{brand}] {operation} failed: {type(e).__name__}: {e}")
        return default()

    async def _fan_out(
        self,
        brands: List[str],
        operation: str,
        call: Callable[[str, BrandAdapter], Awaitable[T]],
        default: Callable[[], T],
    ) -> Dict[str, T]:
        results = await asyncio.gather(
            *(self._isolated(b, operation, lambda a, b=b: call(b, a), default) for b in brands)
        )
        return dict(zip(brands, results))

    async def resolve_across_brands(
        self,
        code: str,
        brands: Optional[Sequence[str]] = None,
        require_match: bool = False,
    ) -> Dict[str, ProductDetails]:
        names = self.active_brands(brands)
        results = await self._fan_out(
            names, f"resolve {code}", lambda _b, a: a.resolve_by_code(code), ProductDetails.empty
        )
        if require_match and not any(d.found for d in results.values()):
            raise NotFoundError(f"No storefront knows product {code}")
        return results

    async def fetch_details_across_brands(
        self,
        references: Mapping[str, Optional[str]],
        brands: Optional[Sequence[str]] = None,
    ) -> Dict[str, ProductDetails]:
        async def call(brand: str, adapter: BrandAdapter) -> ProductDetails:
            reference = references.get(brand)
            if not reference:
                return ProductDetails.empty()
            return await adapter.fetch_product_details(reference)

        return await self._fan_out(self.active_brands(brands), "fetch details", call, ProductDetails.empty)

    async def check_availability_across_brands(
        self,
        references: Mapping[str, Optional[str]],
        brands: Optional[Sequence[str]] = None,
        require_match: bool = False,
    ) -> Dict[str, List[AvailabilityRecord]]:
        """``references`` maps brand to whatever that adapter's availability check expects."""

        async def call(brand: str, adapter: BrandAdapter) -> List[AvailabilityRecord]:
            reference = references.get(brand)
            if not reference:
                return []
            saved = self.stores.list(brand)
            if not saved:
                return []
            return await adapter.check_stores(reference, saved)

        results = await self._fan_out(self.active_brands(brands), "check availability", call, list)
        if require_match and not any(results.values()):
            raise NotFoundError("No storefront reported availability")
        return results

    def availability_references(
        self, details: Mapping[str, Tuple[Optional[str], Optional[str]]]
    ) -> Dict[str, Optional[str]]:
        """Map per-brand ``(url, article_number)`` pairs onto each adapter's availability reference."""
        refs: Dict[str, Optional[str]] = {}
        for brand, pair in details.items():
            adapter = self.adapters.get(brand)
            if adapter is None:
                refs[brand] = None
                continue
            url, article_number = pair
            refs[brand] = adapter.availability_reference(url, article_number)
        return refs


__all__ = ["AvailabilityOrchestrator"]
