from __future__ import annotations

import json
from pathlib import Path

from retail_resolver.cache import DEFAULT_TTL, FOREVER_TTL, SessionCache


class _Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl(tmp_path: Path) -> None:
    clock = _Clock()
    cache = SessionCache(str(tmp_path), clock=clock)
    cache.set("dmReceiptsData", "header", {"x-token": "abc"}, ttl=60)

    clock.now += 59
    assert cache.get("dmReceiptsData", "header") == {"x-token": "abc"}

    clock.now += 2
    assert cache.get("dmReceiptsData", "header") is None
    # Expired entries are removed on access.
    assert not cache.has("dmReceiptsData", "header")


def test_forever_ttl_never_expires(tmp_path: Path) -> None:
    clock = _Clock()
    cache = SessionCache(str(tmp_path), clock=clock)
    cache.set("RossmannCookies", "cookies", "sid=1", ttl=FOREVER_TTL)
    clock.now += 10 * DEFAULT_TTL
    assert cache.get("RossmannCookies", "cookies") == "sid=1"


def test_persist_and_reload_namespace(tmp_path: Path) -> None:
    cache = SessionCache(str(tmp_path))
    cache.set("BudniCookies", "cookies", "main-market=1", ttl=FOREVER_TTL)
    assert cache.persist("BudniCookies")
    assert (tmp_path / "BudniCookies.json").is_file()

    reloaded = SessionCache(str(tmp_path))
    assert reloaded.get("BudniCookies", "cookies") == "main-market=1"
    # Namespaces are isolated from each other.
    assert reloaded.get("RossmannCookies", "cookies") is None


def test_corrupt_file_loads_as_empty_namespace(tmp_path: Path) -> None:
    (tmp_path / "dmReceiptsData.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "RossmannCookies.json").write_text(json.dumps(["a", "b"]), encoding="utf-8")

    cache = SessionCache(str(tmp_path))
    assert cache.load("dmReceiptsData") == {}
    assert cache.load("RossmannCookies") == {}
    cache.set("dmReceiptsData", "header", {"a": "b"})
    assert cache.persist("dmReceiptsData")
    assert json.loads((tmp_path / "dmReceiptsData.json").read_text(encoding="utf-8"))["header"]["value"] == {
        "a": "b"
    }


def test_prune_and_delete(tmp_path: Path) -> None:
    clock = _Clock()
    cache = SessionCache(str(tmp_path), clock=clock)
    cache.set("ns", "old", 1, ttl=10)
    cache.set("ns", "keep", 2, ttl=FOREVER_TTL)
    cache.set("ns", "fresh", 3, ttl=1_000)
    clock.now += 100

    assert cache.prune("ns") == 1
    assert cache.get("ns", "keep") == 2
    assert cache.delete("ns", "fresh") is True
    assert cache.delete("ns", "fresh") is False
    cache.clear("ns")
    assert cache.get("ns", "keep") is None
