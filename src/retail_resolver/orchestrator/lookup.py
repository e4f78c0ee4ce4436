"""Cheap identity lookup (name and brand) for a barcode."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..brands.dm import DmAdapter
from ..db import ResolverDatabase
from ..errors import NotFoundError, ResolverError
from ..logging import get_logger

LOG = get_logger("orchestrator-lookup")

OPEN_FOOD_FACTS_URL = "https://world.openfoodfacts.org/api/v0/product/{code}.json"


def _identity(source: str, name: Optional[str], brand: Optional[str]) -> Dict[str, Any]:
    return {"source": source, "product": {"name": name or "Unknown", "brand": brand or "Unknown"}}


class IdentityLookup:
    """Tries the local articles, then Open Food Facts, then dm; first hit wins."""

    def __init__(self, db: ResolverDatabase, http: httpx.AsyncClient, dm: Optional[DmAdapter] = None) -> None:
        self.db = db
        self.http = http
        self.dm = dm

    async def _open_food_facts(self, code: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self.http.get(OPEN_FOOD_FACTS_URL.format(code=code))
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            LOG.warning(f"Open Food Facts lookup for {code} failed: {e}")
            return None
        if not isinstance(data, dict):
            return None
        product = data.get("product")
        if data.get("status") == 1 and isinstance(product, dict) and product.get("product_name"):
            return _identity("OpenFoodFacts", product.get("product_name"), product.get("brands"))
        LOG.info(f"Open Food Facts has no product {code}; falling back")
        return None

    async def lookup(self, code: str) -> Dict[str, Any]:
        article = self.db.get_article(code)
        if article is not None:
            return {"source": "Database", "product": {"name": article.name, "brand": ""}}

        found = await self._open_food_facts(code)
        if found is not None:
            return found

        if self.dm is not None:
            try:
                identity = await self.dm.lookup_identity(code)
            except NotFoundError:
                identity = None
            except ResolverError as e:
                LOG.warning(f"dm identity lookup for {code} failed: {e}")
                identity = None
            if identity is not None:
                return _identity("DM", identity.get("name"), identity.get("brand"))

        raise NotFoundError(f"No source knows product {code}")


__all__ = ["IdentityLookup", "OPEN_FOOD_FACTS_URL"]
