from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Tuple

import pytest

from retail_resolver.db import ResolverDatabase
from retail_resolver.domain.models import ProductDetails, StoreAvailability
from retail_resolver.errors import NotFoundError
from retail_resolver.orchestrator import ArticleLifecycleManager, AvailabilityOrchestrator
from retail_resolver.orchestrator.articles import MSG_CREATED, MSG_REFRESHED
from retail_resolver.stores import SettingsStore, StoreDirectory

from fakes import FakeAdapter, store_payload

EAN = "4058172936384"
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self) -> None:
        self.now = T0

    def __call__(self) -> datetime:
        return self.now


def _setup(tmp_path: Path) -> Tuple[ArticleLifecycleManager, FakeAdapter, FakeAdapter, _Clock]:
    db = ResolverDatabase(str(tmp_path / "resolver.sqlite3"))
    stores = StoreDirectory(db)
    assert stores.save("dm", store_payload("dm-1"))["success"]
    dm = FakeAdapter(
        "dm",
        ProductDetails(
            url="https://www.dm.de/balea-shampoo-p4058172936384.html",
            price=1.95,
            image_url="https://media.dm.de/1.jpg",
            article_number="595420",
        ),
        stock={"dm-1": StoreAvailability(available=True, quantity=3)},
    )
    budni = FakeAdapter("budni", error=NotFoundError("no hit"))
    settings = SettingsStore(db, default_brands=["dm", "budni"])
    orchestrator = AvailabilityOrchestrator({"dm": dm, "budni": budni}, stores, settings)
    clock = _Clock()
    manager = ArticleLifecycleManager(
        db, orchestrator, price_threshold_days=7, availability_threshold_days=2, clock=clock
    )
    return manager, dm, budni, clock


def _kinds(adapter: FakeAdapter) -> list:
    return [c.split(":", 1)[0] for c in adapter.calls]


async def test_first_upsert_creates_and_fills_both_dimensions(tmp_path: Path) -> None:
    manager, dm, budni, _ = _setup(tmp_path)

    message, article = await manager.upsert_and_refresh(EAN, "Balea Shampoo")

    assert message == MSG_CREATED
    assert article.price == {"dm": 1.95, "budni": None}
    assert article.product_url["dm"].endswith("p4058172936384.html")
    assert article.article_number == {"dm": "595420", "budni": None}
    assert article.image_url == "https://media.dm.de/1.jpg"
    assert [r.to_dict() for r in article.store_availability["dm"]] == [
        {"storeId": "dm-1", "quantity": 3, "available": True}
    ]
    assert article.store_availability["budni"] == []
    assert article.price_last_updated == T0
    assert article.availability_last_updated == T0
    assert dm.calls == [f"resolve:{EAN}", "stock:https://www.dm.de/balea-shampoo-p4058172936384.html:dm-1"]

    stored = manager.get(EAN)
    assert stored is not None
    assert stored.to_dict()["price"] == {"dm": 1.95, "budni": None, "lastUpdated": "2024-05-01T12:00:00+00:00"}


async def test_fresh_article_is_not_refreshed(tmp_path: Path) -> None:
    manager, dm, _, clock = _setup(tmp_path)
    await manager.upsert_and_refresh(EAN, "Balea Shampoo")
    dm.calls.clear()

    clock.now = T0 + timedelta(days=1)
    message, article = await manager.upsert_and_refresh(EAN, "Balea Shampoo")

    assert message == MSG_REFRESHED
    assert dm.calls == []
    assert article.price_last_updated == T0
    assert article.availability_last_updated == T0


async def test_only_stale_availability_is_refreshed(tmp_path: Path) -> None:
    manager, dm, _, clock = _setup(tmp_path)
    await manager.upsert_and_refresh(EAN, "Balea Shampoo")
    dm.calls.clear()
    dm.stock["dm-1"] = StoreAvailability(available=False, quantity=0)

    clock.now = T0 + timedelta(days=3)
    _, article = await manager.upsert_and_refresh(EAN, "Balea Shampoo")

    assert _kinds(dm) == ["stock"]
    assert article.price_last_updated == T0
    assert article.availability_last_updated == clock.now
    assert article.store_availability["dm"][0].available is False


async def test_stale_prices_keep_known_article_numbers(tmp_path: Path) -> None:
    manager, dm, _, clock = _setup(tmp_path)
    await manager.upsert_and_refresh(EAN, "Balea Shampoo")
    dm.calls.clear()
    dm.details = ProductDetails(url="https://www.dm.de/new-p4058172936384.html", price=2.15)

    clock.now = T0 + timedelta(days=8)
    _, article = await manager.upsert_and_refresh(EAN, "Balea Shampoo")

    assert sorted(set(_kinds(dm))) == ["resolve", "stock"]
    assert article.price["dm"] == 2.15
    assert article.article_number["dm"] == "595420"
    assert article.image_url == "https://media.dm.de/1.jpg"
    assert article.price_last_updated == clock.now


async def test_force_refresh_requires_existing_article(tmp_path: Path) -> None:
    manager, dm, _, clock = _setup(tmp_path)
    with pytest.raises(NotFoundError):
        await manager.force_refresh_prices(EAN)
    with pytest.raises(NotFoundError):
        await manager.force_refresh_availability(EAN)

    await manager.upsert_and_refresh(EAN, "Balea Shampoo")
    dm.calls.clear()
    clock.now = T0 + timedelta(hours=1)
    article = await manager.force_refresh_availability(EAN)

    assert _kinds(dm) == ["stock"]
    assert article.availability_last_updated == clock.now
    assert article.price_last_updated == T0


async def test_upsert_requires_ean_and_name(tmp_path: Path) -> None:
    manager, _, _, _ = _setup(tmp_path)
    with pytest.raises(ValueError, match="EAN and Name are required"):
        await manager.upsert_and_refresh("", "Balea Shampoo")
    with pytest.raises(ValueError):
        await manager.upsert_and_refresh(EAN, "")


async def test_list_and_delete(tmp_path: Path) -> None:
    manager, _, _, _ = _setup(tmp_path)
    await manager.upsert_and_refresh(EAN, "Balea Shampoo")

    assert [a.ean for a in manager.list()] == [EAN]
    assert manager.delete(EAN) is True
    assert manager.delete(EAN) is False
    assert manager.get(EAN) is None
