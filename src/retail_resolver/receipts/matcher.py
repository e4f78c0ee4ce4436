"""Turn a receipt into catalog references, one best-effort match per product line."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..config import MatcherConfig
from ..domain.models import MatchCandidate, MatchedProduct, ReceiptLineItem
from ..errors import NotFoundError, ResolverError
from ..logging import get_logger
from .layouts import LAYOUTS, ReceiptLayout
from .sanitize import TokenCorrector, sanitize_product_name
from .similarity import price_boundary, similarity_score
from .text import extract_text

LOG = get_logger("receipts-matcher")


class ProductSearch(Protocol):
    async def search_cached(self, query: str, window: Tuple[int, int]) -> Optional[List[MatchCandidate]]: ...

    async def search_live(self, query: str, window: Tuple[int, int]) -> List[MatchCandidate]: ...


class IdentitySource(Protocol):
    async def lookup(self, code: str) -> Dict[str, Any]: ...


class MatchStrategy(Protocol):
    async def match(self, item: ReceiptLineItem) -> Optional[MatchedProduct]: ...


class SearchMatchStrategy:
    """Match a line by querying the storefront search within the line's price window.

    With cached search headers the best-scoring exact-price candidate wins
    outright. Otherwise, or when that yields nothing, a live browser search
    runs and the first exact-price candidate scoring at least
    ``candidate_accept_score`` is taken.
    """

    def __init__(self, search: ProductSearch, corrector: TokenCorrector, config: MatcherConfig) -> None:
        self.search = search
        self.corrector = corrector
        self.config = config

    def _score(self, query: str, title: str) -> float:
        return similarity_score(query, title.lower(), self.config.token_accept_ratio)

    async def match(self, item: ReceiptLineItem) -> Optional[MatchedProduct]:
        query = sanitize_product_name(item.product_name, self.corrector)
        if not query:
            return None
        window = price_boundary(item.price)

        cached = await self.search.search_cached(query, window)
        if cached:
            priced = [c for c in cached if c.price == item.price]
            if priced:
                best = max(priced, key=lambda c: self._score(query, c.title))
                return MatchedProduct(best.brand, best.title, item.quantity, best.code)

        for candidate in await self.search.search_live(query, window):
            if candidate.price != item.price:
                continue
            if self._score(query, candidate.title) >= self.config.candidate_accept_score:
                return MatchedProduct(candidate.brand, candidate.title, item.quantity, candidate.code)
        return None


class CodeLookupStrategy:
    """Match a line by the barcode printed on it."""

    def __init__(self, identity: IdentitySource) -> None:
        self.identity = identity

    async def match(self, item: ReceiptLineItem) -> Optional[MatchedProduct]:
        if not item.ean:
            return None
        found = await self.identity.lookup(item.ean)
        product = found.get("product") or {}
        return MatchedProduct(
            brand_name=product.get("brand") or "",
            title=product.get("name") or item.product_name,
            quantity=item.quantity,
            code=item.ean,
        )


class ReceiptMatcher:
    def __init__(
        self,
        strategies: Mapping[str, MatchStrategy],
        layouts: Optional[Mapping[str, ReceiptLayout]] = None,
    ) -> None:
        self.strategies = dict(strategies)
        self.layouts = dict(layouts if layouts is not None else LAYOUTS)

    @property
    def brands(self) -> List[str]:
        return [b for b in self.layouts if b in self.strategies]

    def _layout(self, brand: str) -> ReceiptLayout:
        if brand not in self.layouts or brand not in self.strategies:
            raise ValueError(f"Receipt import is not supported for brand {brand!r}")
        return self.layouts[brand]

    async def match_items(self, brand: str, items: Sequence[ReceiptLineItem]) -> List[Dict[str, Any]]:
        strategy = self.strategies[brand]
        matched: List[Dict[str, Any]] = []
        for item in items:
            try:
                product = await strategy.match(item)
            except NotFoundError:
                product = None
            except ResolverError as e:
                LOG.warning(f"[{brand}] matching {item.product_name!r} failed: {e}")
                product = None
            if product is None:
                LOG.info(f"[{brand}] no catalog match for {item.product_name!r} ({item.price:.2f})")
                continue
            matched.append(product.to_item())
        LOG.info(f"[{brand}] matched {len(matched)}/{len(items)} receipt line(s)")
        return matched

    async def match_text(self, brand: str, text: str) -> List[Dict[str, Any]]:
        layout = self._layout(brand)
        return await self.match_items(brand, layout.parse(text))

    async def match_document(self, brand: str, document: Union[str, bytes]) -> List[Dict[str, Any]]:
        self._layout(brand)
        return await self.match_text(brand, extract_text(document))


__all__ = ["CodeLookupStrategy", "ReceiptMatcher", "SearchMatchStrategy"]
