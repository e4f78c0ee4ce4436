from __future__ import annotations

import json
from pathlib import Path

import pytest

from retail_resolver.cache import FOREVER_TTL, SessionCache
from retail_resolver.cli.main import main

from fakes import FakeAdapter


def test_cache_prune_removes_only_expired_entries(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    cache_dir = tmp_path / "cache"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CACHE_DIR", str(cache_dir))

    clock_now = [1_000.0]
    cache = SessionCache(str(cache_dir), clock=lambda: clock_now[0])
    cache.set("dmReceiptsData", "header", {"a": "b"}, ttl=1)
    cache.set("dmReceiptsData", "keep", "x", ttl=FOREVER_TTL)
    assert cache.persist("dmReceiptsData")

    assert main(["cache-prune", "dmReceiptsData"]) == 0
    assert "1" in capsys.readouterr().out.splitlines()

    reloaded = SessionCache(str(cache_dir))
    assert reloaded.get("dmReceiptsData", "header") is None
    assert reloaded.get("dmReceiptsData", "keep") == "x"


def test_receipt_command_rejects_missing_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    assert main(["receipt", "--brand", "dm", str(tmp_path / "missing.pdf")]) == 2


def test_unknown_subcommand_exits() -> None:
    with pytest.raises(SystemExit):
        main(["frobnicate"])


class _StubEngine:
    def __init__(self, adapters) -> None:
        self.adapters = adapters
        self.running = False

    async def start(self) -> None:
        self.running = True

    async def shutdown(self) -> None:
        self.running = False


def test_stores_command_prints_nearby_branches(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    browsers = []

    def build(config, with_browser=True):
        browsers.append(with_browser)
        return _StubEngine({"dm": FakeAdapter("dm")})

    monkeypatch.setattr("retail_resolver.cli.main.build_engine", build)

    assert main(["stores", "dm", "20095"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert [s["data"]["storeId"] for s in printed] == ["dm-near-1"]
    assert browsers == [False]

    assert main(["stores", "budni", "20095"]) == 2
