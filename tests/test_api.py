from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from starlette.testclient import TestClient

from retail_resolver.api import create_app
from retail_resolver.cache import SessionCache
from retail_resolver.config import MatcherConfig, ResolverConfig
from retail_resolver.db import ResolverDatabase
from retail_resolver.domain.models import MatchCandidate, ProductDetails, StoreAvailability
from retail_resolver.engine import ResolverEngine
from retail_resolver.orchestrator import ArticleLifecycleManager, AvailabilityOrchestrator, IdentityLookup
from retail_resolver.receipts import ReceiptMatcher, SearchMatchStrategy, TokenCorrector
from retail_resolver.stores import SettingsStore, StoreDirectory

from fakes import FakeAdapter, StaticSearch, receipt_pdf, store_payload

EAN = "4058172936384"
DM_URL = "https://www.dm.de/balea-shampoo-p4058172936384.html"


def _open_food_facts(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith(f"/{EAN}.json"):
        return httpx.Response(200, json={"status": 1, "product": {"product_name": "Shampoo", "brands": "Balea"}})
    return httpx.Response(200, json={"status": 0})


def _engine(root: Path) -> ResolverEngine:
    (root / "README.md").write_text("test marker", encoding="utf-8")
    config = ResolverConfig(
        root_dir=str(root),
        brands=["dm"],
        cache_dir=str(root / "var" / "cache"),
        db_path=str(root / "var" / "resolver.sqlite3"),
    )
    db = ResolverDatabase(config.db_path)
    http = httpx.AsyncClient(transport=httpx.MockTransport(_open_food_facts))
    dm = FakeAdapter(
        "dm",
        ProductDetails(url=DM_URL, price=1.95, image_url="https://media.dm.de/1.jpg", article_number="595420"),
        stock={"dm-1": StoreAvailability(available=True, quantity=3)},
    )
    adapters = {"dm": dm}
    stores = StoreDirectory(db)
    settings = SettingsStore(db, default_brands=config.brands)
    orchestrator = AvailabilityOrchestrator(adapters, stores, settings, call_timeout=5)
    lookup = IdentityLookup(db, http)
    receipts = ReceiptMatcher(
        {
            "dm": SearchMatchStrategy(
                StaticSearch([MatchCandidate("Shampoo", 2.99, "Balea", EAN)]),
                TokenCorrector(["balea", "shampoo"]),
                MatcherConfig(),
            )
        }
    )
    return ResolverEngine(
        config=config,
        db=db,
        cache=SessionCache(config.cache_dir),
        http=http,
        browser=None,
        adapters=adapters,
        stores=stores,
        settings=settings,
        orchestrator=orchestrator,
        articles=ArticleLifecycleManager(db, orchestrator),
        lookup=lookup,
        receipts=receipts,
    )


@pytest.fixture()
def client(tmp_path: Path) -> TestClient:
    return TestClient(create_app(_engine(tmp_path), allow_origins=["*"]))


def test_health(client: TestClient) -> None:
    payload = client.get("/api/health").json()
    assert payload["status"] == "ok"
    assert payload["brands"] == ["dm"]


def test_article_lifecycle_endpoints(client: TestClient) -> None:
    assert client.post("/api/dm/store", json=store_payload("dm-1")).status_code == 201

    created = client.post("/api/article", json={"ean": EAN, "name": "Balea Shampoo"})
    assert created.status_code == 200
    body = created.json()
    assert body["message"] == "New article created"
    assert body["article"]["price"]["dm"] == 1.95
    assert body["article"]["storeAvailability"]["dm"] == [{"storeId": "dm-1", "quantity": 3, "available": True}]

    again = client.post("/api/article", json={"ean": EAN, "name": "Balea Shampoo"})
    assert again.json()["message"] == "Article retrieved/updated"

    assert [a["ean"] for a in client.get("/api/articles").json()] == [EAN]
    assert client.get(f"/api/article/{EAN}").json()["articleNumber"] == {"dm": "595420"}

    refreshed = client.put(f"/api/article/prices/{EAN}")
    assert refreshed.status_code == 200
    assert refreshed.json()["productUrl"] == {"dm": DM_URL}
    assert client.put(f"/api/article/stores/{EAN}").status_code == 200

    assert client.delete(f"/api/article/{EAN}").status_code == 200
    assert client.get(f"/api/article/{EAN}").status_code == 404
    assert client.put(f"/api/article/prices/{EAN}").status_code == 404


def test_article_requires_ean_and_name(client: TestClient) -> None:
    response = client.post("/api/article", json={"ean": EAN})
    assert response.status_code == 400
    assert response.json()["detail"] == "EAN and Name are required"


def test_lookup_prefers_database_then_open_food_facts(client: TestClient) -> None:
    first = client.get(f"/api/lookup/{EAN}").json()
    assert first == {"source": "OpenFoodFacts", "product": {"name": "Shampoo", "brand": "Balea"}}

    client.post("/api/article", json={"ean": EAN, "name": "Balea Shampoo"})
    assert client.get(f"/api/lookup/{EAN}").json()["source"] == "Database"

    assert client.get("/api/lookup/0000000000000").status_code == 404


def test_store_endpoints(client: TestClient) -> None:
    assert client.post("/api/dm/store", json=store_payload("dm-1")).json() == {"message": "Store added successfully"}
    duplicate = client.post("/api/dm/store", json=store_payload("dm-1"))
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "Store with this ID already exists"}
    assert client.post("/api/aldi/store", json=store_payload("a-1")).json() == {"error": "Invalid brand specified"}

    stores = client.get("/api/dm/store").json()
    assert [s["data"]["storeId"] for s in stores] == ["dm-1"]
    assert stores[0]["data"]["coordinates"] == [53.55, 10.0]
    assert client.get("/api/aldi/store").status_code == 400

    stock = client.get("/api/dm/store/product", params={"url": DM_URL})
    assert stock.json() == [{"storeId": "dm-1", "quantity": 3, "available": True}]
    assert client.get("/api/dm/store/product").status_code == 400

    assert client.delete("/api/rossmann/store/dm-1").status_code == 404
    assert client.delete("/api/dm/store/dm-1").status_code == 200
    assert client.delete("/api/dm/store/dm-1").status_code == 404


def test_store_location_search(client: TestClient) -> None:
    found = client.get("/api/dm/store/location/20095")
    assert found.status_code == 200
    assert [s["data"]["storeId"] for s in found.json()] == ["dm-near-1"]
    assert found.json()[0]["data"]["address"] == {"zip": "20095"}

    assert client.get("/api/budni/store/location/20095").status_code == 400
    # Search results are not saved.
    assert client.get("/api/dm/store").json() == []


def test_brand_product_endpoints(client: TestClient) -> None:
    resolved = client.get(f"/api/dm/ean/{EAN}").json()
    assert resolved == {
        "ean": EAN,
        "url": DM_URL,
        "price": 1.95,
        "imageUrl": "https://media.dm.de/1.jpg",
        "articleNumber": "595420",
    }
    assert client.get("/api/dm/product", params={"url": DM_URL}).json()["price"] == 1.95
    assert client.get("/api/dm/product").status_code == 400
    assert client.get(f"/api/budni/ean/{EAN}").status_code == 400


def test_settings_endpoints(client: TestClient) -> None:
    assert client.get("/api/settings").json() == {"brands": ["dm"]}

    saved = client.post("/api/settings", json={"brands": ["dm", "budni"]})
    assert saved.json() == {"success": True, "settings": {"brands": ["dm", "budni"]}}
    assert client.post("/api/settings", json={"brands": ["aldi"]}).status_code == 400
    assert client.post("/api/settings", json={"brands": "dm"}).status_code == 400


def test_receipt_upload(client: TestClient) -> None:
    pdf = receipt_pdf(
        [
            "dm-drogerie markt",
            "Filiale 1234",
            "Datum 01.05.2024",
            "2x Balea Shampoo 2,99 5,98 1",
            "SUMME EUR 5,98",
        ]
    )

    response = client.post("/api/dm/receipt", files={"pdf": ("receipt.pdf", pdf, "application/pdf")})

    assert response.status_code == 200
    assert response.json() == [{"name": "Balea Shampoo", "quantity": 2, "code": EAN, "type": "article"}]

    assert client.post("/api/dm/receipt", data={"other": "x"}).status_code == 400
    unsupported = client.post("/api/rossmann/receipt", files={"pdf": ("receipt.pdf", pdf, "application/pdf")})
    assert unsupported.status_code == 400
