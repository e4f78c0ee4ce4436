from __future__ import annotations

from pathlib import Path

import pytest

from retail_resolver.db import ResolverDatabase
from retail_resolver.domain.normalize import WEEKDAYS
from retail_resolver.stores import SettingsStore, StoreDirectory


def _payload(store_id: str, **data: object) -> dict:
    body = {
        "storeId": store_id,
        "storeNumber": "1234",
        "address": {"street": "Mönckebergstr. 7", "zip": "20095", "city": "Hamburg"},
        "coordinates": [53.55, 10.0],
        "phone": "040 123",
    }
    body.update(data)
    return {"data": body, "openingHours": {"Monday": [{"open": "08:00", "close": "20:00"}], "Funday": []}}


def test_save_rejects_fifth_store_of_a_brand(tmp_path: Path) -> None:
    directory = StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))
    for i in range(4):
        assert directory.save("dm", _payload(f"dm-{i}")) == {"success": True, "message": "Store added successfully"}

    result = directory.save("dm", _payload("dm-4"))
    assert result == {"success": False, "message": "Brand store limit (4) reached"}
    assert [s.store_id for s in directory.list("dm")] == ["dm-0", "dm-1", "dm-2", "dm-3"]

    # The cap is per brand.
    assert directory.save("budni", _payload("budni-0"))["success"]


def test_save_validates_input(tmp_path: Path) -> None:
    directory = StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))

    assert directory.save("aldi", _payload("x"))["message"] == "Invalid brand specified"
    assert directory.save("dm", {"openingHours": {}})["message"] == "Missing or malformed store data"
    assert directory.save("dm", _payload("x", coordinates="north"))["message"] == "Missing or malformed store data"
    assert directory.save("dm", _payload(""))["message"] == "Missing or malformed store data"

    assert directory.save("dm", _payload("x"))["success"]
    assert directory.save("rossmann", _payload("x"))["message"] == "Store with this ID already exists"


def test_saved_store_is_normalised(tmp_path: Path) -> None:
    directory = StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))
    assert directory.save("DM", _payload("dm-1", coordinates={"lat": 53.5, "lon": 9.9}))["success"]

    store = directory.get("dm-1")
    assert store is not None
    assert store.brand == "dm"
    assert store.coordinates == [53.5, 9.9]
    assert list(store.opening_hours) == list(WEEKDAYS)
    assert store.opening_hours["Monday"] == [{"open": "08:00", "close": "20:00"}]
    assert store.opening_hours["Sunday"] == []

    payload = store.to_payload()
    assert payload["data"]["storeId"] == "dm-1"
    assert "Funday" not in payload["openingHours"]


def test_delete_store(tmp_path: Path) -> None:
    directory = StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))
    directory.save("dm", _payload("dm-1"))

    assert directory.delete("dm-1") == {"success": True, "message": "Store deleted successfully"}
    assert directory.delete("dm-1") == {"success": False, "message": "Store not found"}
    assert directory.list("dm") == []


def test_settings_store_brands(tmp_path: Path) -> None:
    settings = SettingsStore(ResolverDatabase(str(tmp_path / "resolver.sqlite3")), default_brands=["dm", "rossmann"])
    assert settings.brands() == ["dm", "rossmann"]

    assert settings.set_brands(["Budni", "dm", "dm"]) == ["budni", "dm"]
    assert settings.to_dict() == {"brands": ["budni", "dm"]}

    with pytest.raises(ValueError):
        settings.set_brands(["aldi"])
    assert settings.brands() == ["budni", "dm"]


def test_delete_only_matches_the_given_brand(tmp_path: Path) -> None:
    directory = StoreDirectory(ResolverDatabase(str(tmp_path / "resolver.sqlite3")))
    assert directory.save("dm", _payload("dm-1"))["success"]

    assert directory.delete("dm-1", brand="rossmann") == {"success": False, "message": "Store not found"}
    assert directory.get("dm-1") is not None

    assert directory.delete("dm-1", brand="DM")["success"]
    assert directory.get("dm-1") is None
