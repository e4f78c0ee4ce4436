from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ProductDetails:
    """What a storefront reports for one product."""

    url: Optional[str] = None
    price: Optional[float] = None
    image_url: Optional[str] = None
    article_number: Optional[str] = None

    @classmethod
    def empty(cls) -> "ProductDetails":
        return cls()

    @property
    def found(self) -> bool:
        return any(v is not None for v in (self.url, self.price, self.image_url, self.article_number))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "price": self.price,
            "imageUrl": self.image_url,
            "articleNumber": self.article_number,
        }


@dataclass
class StoreAvailability:
    available: Optional[bool]
    quantity: Optional[int] = 0


@dataclass
class AvailabilityRecord:
    store_id: str
    available: Optional[bool]
    quantity: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {"storeId": self.store_id, "quantity": self.quantity, "available": self.available}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AvailabilityRecord":
        return cls(
            store_id=str(raw.get("storeId")),
            available=raw.get("available"),
            quantity=raw.get("quantity"),
        )


@dataclass
class Store:
    store_id: str
    store_number: str
    brand: str
    address: Dict[str, Any]
    coordinates: List[float]
    phone: Optional[str] = None
    opening_hours: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Shape used by the store endpoints: ``{data, openingHours}``."""
        return {
            "data": {
                "storeId": self.store_id,
                "storeNumber": self.store_number,
                "brand": self.brand,
                "address": self.address,
                "phone": self.phone,
                "coordinates": self.coordinates,
            },
            "openingHours": self.opening_hours,
        }


@dataclass
class Article:
    """Durable product record keyed by EAN.

    The two ``*_last_updated`` timestamps drive independent staleness clocks.
    """

    ean: str
    name: str
    price: Dict[str, Optional[float]] = field(default_factory=dict)
    product_url: Dict[str, Optional[str]] = field(default_factory=dict)
    article_number: Dict[str, Optional[str]] = field(default_factory=dict)
    store_availability: Dict[str, List[AvailabilityRecord]] = field(default_factory=dict)
    price_last_updated: Optional[datetime] = None
    availability_last_updated: Optional[datetime] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        def _iso(dt: Optional[datetime]) -> Optional[str]:
            return dt.isoformat(timespec="seconds") if dt else None

        return {
            "ean": self.ean,
            "name": self.name,
            "price": {**self.price, "lastUpdated": _iso(self.price_last_updated)},
            "imageUrl": self.image_url,
            "productUrl": dict(self.product_url),
            "articleNumber": dict(self.article_number),
            "storeAvailability": {
                **{brand: [r.to_dict() for r in records] for brand, records in self.store_availability.items()},
                "lastUpdated": _iso(self.availability_last_updated),
            },
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ReceiptLineItem:
    product_name: str
    price: float
    quantity: int = 1
    # Trailing numeric column printed after the line total; meaning unknown.
    code: Optional[str] = None
    ean: Optional[str] = None


@dataclass
class MatchCandidate:
    title: str
    price: Optional[float]
    brand: str = ""
    code: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MatchedProduct:
    brand_name: str
    title: str
    quantity: int
    code: Optional[str]

    def to_item(self) -> Dict[str, Any]:
        name = f"{self.brand_name} {self.title}".strip()
        return {"name": name, "quantity": self.quantity, "code": self.code, "type": "article"}
