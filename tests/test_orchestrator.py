from __future__ import annotations

from pathlib import Path

import pytest

from retail_resolver.config import ResolverConfig
from retail_resolver.db import ResolverDatabase
from retail_resolver.domain.models import ProductDetails, StoreAvailability
from retail_resolver.errors import NetworkError, NotFoundError
from retail_resolver.orchestrator import AvailabilityOrchestrator
from retail_resolver.stores import StoreDirectory

from fakes import FakeAdapter, store_payload


@pytest.fixture()
def stores(tmp_path: Path) -> StoreDirectory:
    return StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))


async def test_resolve_isolates_failing_and_missing_adapters(stores: StoreDirectory) -> None:
    dm = FakeAdapter("dm", ProductDetails(url="https://www.dm.de/x-p4058172.html", price=1.95, article_number="123"))
    rossmann = FakeAdapter("rossmann", error=NetworkError("boom", status_code=503))
    budni = FakeAdapter("budni", error=NotFoundError("ambiguous"))
    orchestrator = AvailabilityOrchestrator({"dm": dm, "rossmann": rossmann, "budni": budni}, stores)

    results = await orchestrator.resolve_across_brands("4058172", ["dm", "rossmann", "mueller", "budni"])

    assert list(results) == ["dm", "rossmann", "mueller", "budni"]
    assert results["dm"].price == 1.95
    assert results["rossmann"] == ProductDetails.empty()
    assert results["mueller"] == ProductDetails.empty()
    assert results["budni"] == ProductDetails.empty()


async def test_resolve_times_out_slow_adapter_only(stores: StoreDirectory) -> None:
    fast = FakeAdapter("dm", ProductDetails(price=2.45))
    slow = FakeAdapter("mueller", ProductDetails(price=9.99), delay=1.0)
    orchestrator = AvailabilityOrchestrator({"dm": fast, "mueller": slow}, stores, call_timeout=0.05)

    results = await orchestrator.resolve_across_brands("1", ["dm", "mueller"])

    assert results["dm"].price == 2.45
    assert results["mueller"].price is None


async def test_require_match_raises_when_every_brand_is_empty(stores: StoreDirectory) -> None:
    orchestrator = AvailabilityOrchestrator({"dm": FakeAdapter("dm", error=NotFoundError("x"))}, stores)
    with pytest.raises(NotFoundError):
        await orchestrator.resolve_across_brands("1", ["dm"], require_match=True)


async def test_availability_uses_saved_stores_and_reports_unknown_per_store(stores: StoreDirectory) -> None:
    assert stores.save("dm", store_payload("dm-1"))["success"]
    assert stores.save("dm", store_payload("dm-2"))["success"]
    dm = FakeAdapter("dm", stock={"dm-1": StoreAvailability(available=True, quantity=7)})
    rossmann = FakeAdapter("rossmann")
    orchestrator = AvailabilityOrchestrator({"dm": dm, "rossmann": rossmann}, stores)

    results = await orchestrator.check_availability_across_brands(
        {"dm": "595420", "rossmann": "https://www.rossmann.de/de/p/1"}, ["dm", "rossmann"]
    )

    assert [r.to_dict() for r in results["dm"]] == [
        {"storeId": "dm-1", "quantity": 7, "available": True},
        {"storeId": "dm-2", "quantity": 0, "available": None},
    ]
    # No saved rossmann stores means no upstream call at all.
    assert results["rossmann"] == []
    assert rossmann.calls == []


async def test_availability_skips_brands_without_reference(stores: StoreDirectory) -> None:
    assert stores.save("dm", store_payload("dm-1"))["success"]
    dm = FakeAdapter("dm", stock={"dm-1": StoreAvailability(available=False, quantity=0)})
    orchestrator = AvailabilityOrchestrator({"dm": dm}, stores)

    results = await orchestrator.check_availability_across_brands({"dm": None}, ["dm"])

    assert results == {"dm": []}
    assert dm.calls == []


async def test_fetch_details_across_brands(stores: StoreDirectory) -> None:
    dm = FakeAdapter("dm", ProductDetails(price=3.45))
    orchestrator = AvailabilityOrchestrator({"dm": dm, "budni": FakeAdapter("budni")}, stores)

    results = await orchestrator.fetch_details_across_brands({"dm": "4058172"}, ["dm", "budni"])

    assert results["dm"].price == 3.45
    assert results["budni"] == ProductDetails.empty()
    assert dm.calls == ["details:4058172"]


def test_availability_references_follow_adapter_preference(stores: StoreDirectory) -> None:
    from retail_resolver.brands.dm import DmAdapter

    cfg = ResolverConfig(root_dir=".")
    dm = DmAdapter(None, None, None, cfg)  # type: ignore[arg-type]
    orchestrator = AvailabilityOrchestrator({"dm": dm, "rossmann": FakeAdapter("rossmann")}, stores)

    refs = orchestrator.availability_references(
        {
            "dm": ("https://www.dm.de/x-p4058172.html", "595420"),
            "rossmann": ("https://www.rossmann.de/de/p/1", "77"),
            "mueller": ("https://mueller.de/p/1", None),
        }
    )

    assert refs == {"dm": "595420", "rossmann": "https://www.rossmann.de/de/p/1", "mueller": None}
