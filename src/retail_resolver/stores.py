"""Saved-store directory with a per-brand cap, and the active-brand settings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .config import KNOWN_BRANDS
from .db import ResolverDatabase
from .domain.models import Store
from .domain.normalize import coerce_coordinates, normalize_opening_hours
from .logging import get_logger

LOG = get_logger("stores")

BRANDS_SETTING = "brands"


def _result(success: bool, message: str) -> Dict[str, Any]:
    return {"success": success, "message": message}


class StoreDirectory:
    def __init__(self, db: ResolverDatabase, limit_per_brand: int = 4) -> None:
        self.db = db
        self.limit_per_brand = limit_per_brand

    def save(self, brand: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and persist a store for ``brand``.

        Returns ``{success, message}``; nothing is written unless success is true.
        """
        brand = (brand or "").lower()
        if brand not in KNOWN_BRANDS:
            return _result(False, "Invalid brand specified")

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return _result(False, "Missing or malformed store data")
        coordinates = coerce_coordinates(data.get("coordinates"))
        store_id = data.get("storeId")
        if not store_id or coordinates is None:
            return _result(False, "Missing or malformed store data")
        store_id = str(store_id)

        if self.db.get_store(store_id) is not None:
            return _result(False, "Store with this ID already exists")
        if self.db.count_stores(brand) >= self.limit_per_brand:
            return _result(False, f"Brand store limit ({self.limit_per_brand}) reached")

        address = data.get("address")
        store = Store(
            store_id=store_id,
            store_number=str(data.get("storeNumber") or ""),
            brand=brand,
            address=address if isinstance(address, dict) else {},
            phone=data.get("phone") or None,
            coordinates=coordinates,
            opening_hours=normalize_opening_hours(payload.get("openingHours")),
        )
        self.db.insert_store(store)
        LOG.info(f"Saved {brand} store {store_id}")
        return _result(True, "Store added successfully")

    def list(self, brand: str) -> List[Store]:
        return self.db.list_stores((brand or "").lower())

    def get(self, store_id: str) -> Optional[Store]:
        return self.db.get_store(store_id)

    def delete(self, store_id: str, brand: Optional[str] = None) -> Dict[str, Any]:
        """Delete a saved store; with ``brand`` only a store of that brand qualifies."""
        if brand is not None:
            store = self.db.get_store(store_id)
            if store is None or store.brand != brand.lower():
                return _result(False, "Store not found")
        if not self.db.delete_store(store_id):
            return _result(False, "Store not found")
        LOG.info(f"Deleted store {store_id}")
        return _result(True, "Store deleted successfully")


class SettingsStore:
    """Ordered list of active brands, persisted in the settings table."""

    def __init__(self, db: ResolverDatabase, default_brands: Sequence[str] = KNOWN_BRANDS) -> None:
        self.db = db
        self.default_brands = list(default_brands)

    def brands(self) -> List[str]:
        stored = self.db.get_setting(BRANDS_SETTING)
        if not isinstance(stored, list):
            return list(self.default_brands)
        return [b for b in stored if b in KNOWN_BRANDS]

    def set_brands(self, brands: Sequence[str]) -> List[str]:
        cleaned: List[str] = []
        for b in brands:
            name = str(b).strip().lower()
            if name not in KNOWN_BRANDS:
                raise ValueError(f"Unknown brand: {b!r}")
            if name not in cleaned:
                cleaned.append(name)
        self.db.set_setting(BRANDS_SETTING, cleaned)
        LOG.info(f"Active brands set to {cleaned}")
        return cleaned

    def to_dict(self) -> Dict[str, Any]:
        return {"brands": self.brands()}


__all__ = ["StoreDirectory", "SettingsStore"]
