"""Namespaced TTL cache for session artifacts (cookies, captured headers).

One JSON file per namespace under the cache directory, mapping
``key -> {"value", "timestamp", "ttl"}``. Timestamps and TTLs are seconds.
"""

from __future__ import annotations

import json
import os
import time
from typing import Any, Callable, Dict, Optional

from .logging import get_logger

LOG = get_logger("cache")

FOREVER_TTL = 0
DEFAULT_TTL = 6 * 60 * 60


class SessionCache:
    def __init__(self, cache_dir: str, clock: Callable[[], float] = time.time) -> None:
        self.cache_dir = os.path.abspath(cache_dir)
        self._clock = clock
        self._namespaces: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _path(self, namespace: str) -> str:
        return os.path.join(self.cache_dir, f"{namespace}.json")

    def _entries(self, namespace: str) -> Dict[str, Dict[str, Any]]:
        if namespace not in self._namespaces:
            self.load(namespace)
        return self._namespaces[namespace]

    def _expired(self, entry: Dict[str, Any]) -> bool:
        ttl = entry.get("ttl", DEFAULT_TTL)
        if ttl == FOREVER_TTL:
            return False
        try:
            return self._clock() - float(entry.get("timestamp", 0)) > float(ttl)
        except (TypeError, ValueError):
            return True

    def load(self, namespace: str) -> Dict[str, Dict[str, Any]]:
        """Read a namespace from disk; missing or unreadable files yield an empty namespace."""
        path = self._path(namespace)
        entries: Dict[str, Dict[str, Any]] = {}
        if os.path.exists(path):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    entries = {k: v for k, v in data.items() if isinstance(v, dict) and "value" in v}
                else:
                    LOG.warning(f"Cache file {path} is not a JSON object; ignoring it")
            except (OSError, ValueError) as e:
                LOG.warning(f"Failed reading cache {namespace}: {e}")
        self._namespaces[namespace] = entries
        return entries

    def persist(self, namespace: str) -> bool:
        entries = self._namespaces.get(namespace, {})
        path = self._path(namespace)
        tmp = path + ".tmp"
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(entries, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            LOG.warning(f"Failed writing cache {namespace}: {e}")
            return False
        return True

    def get(self, namespace: str, key: str) -> Optional[Any]:
        entries = self._entries(namespace)
        entry = entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            LOG.debug(f"Cache entry {namespace}/{key} expired")
            del entries[key]
            return None
        return entry.get("value")

    def has(self, namespace: str, key: str) -> bool:
        return self.get(namespace, key) is not None

    def set(self, namespace: str, key: str, value: Any, ttl: float = DEFAULT_TTL) -> None:
        self._entries(namespace)[key] = {"value": value, "timestamp": self._clock(), "ttl": ttl}

    def delete(self, namespace: str, key: str) -> bool:
        return self._entries(namespace).pop(key, None) is not None

    def clear(self, namespace: str) -> None:
        self._namespaces[namespace] = {}

    def prune(self, namespace: str) -> int:
        """Eagerly drop expired entries; returns how many were removed."""
        entries = self._entries(namespace)
        stale = [k for k, v in entries.items() if self._expired(v)]
        for k in stale:
            del entries[k]
        if stale:
            LOG.info(f"Pruned {len(stale)} expired entr{'y' if len(stale) == 1 else 'ies'} from {namespace}")
        return len(stale)


__all__ = ["SessionCache", "FOREVER_TTL", "DEFAULT_TTL"]
