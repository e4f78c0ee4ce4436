import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dotenv import dotenv_values

from .logging import get_logger
from .paths import find_project_root, var_dir

log = get_logger("config")

KNOWN_BRANDS: Tuple[str, ...] = ("dm", "rossmann", "mueller", "budni")
DEFAULT_BUDNI_COOKIE = "main-market=412131; Sitzung=17B"
DEFAULT_BUDNI_MARKETS_URL = "https://www.budni.de/api/infra/markets"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    Running the server from a subdirectory still finds the deployment-level
    `.env` this way.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Read the nearest .env into a mapping; does not mutate the environment."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


@dataclass
class MatcherConfig:
    dictionary_index_threshold: float = 0.7
    dictionary_accept_score: float = 0.3
    token_accept_ratio: float = 0.5
    candidate_accept_score: float = 0.3


@dataclass
class ResolverConfig:
    root_dir: str
    brands: List[str] = field(default_factory=lambda: list(KNOWN_BRANDS))
    price_threshold_days: int = 7
    availability_threshold_days: int = 2
    store_limit_per_brand: int = 4
    adapter_call_timeout: float = 60.0
    http_timeout: float = 20.0
    browser_max_contexts: int = 4
    browser_headless: bool = True
    dm_search_timeout: float = 15.0
    mueller_stock_timeout: float = 20.0
    cache_dir: str = ""
    db_path: str = ""
    budni_cookie: str = DEFAULT_BUDNI_COOKIE
    budni_markets_url: str = DEFAULT_BUDNI_MARKETS_URL
    store_search_limit: int = 5
    matcher: MatcherConfig = field(default_factory=MatcherConfig)


def parse_brands(raw: Optional[str]) -> List[str]:
    """Split a comma separated brand list, keeping order and dropping unknowns."""
    if not raw:
        return list(KNOWN_BRANDS)
    brands: List[str] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        if name not in KNOWN_BRANDS:
            log.warning(f"Ignoring unknown brand in RESOLVER_BRANDS: {name!r}")
            continue
        if name not in brands:
            brands.append(name)
    return brands


def load_config(root_dir: Optional[str] = None) -> ResolverConfig:
    """Build the resolver configuration.

    Resolution order per key: process environment, then the nearest `.env`,
    then the built-in default.
    """
    root = find_project_root(root_dir)
    env = _read_dotenv(root)

    def _get(key: str) -> Optional[str]:
        v = os.environ.get(key)
        if v is None:
            v = env.get(key)
        return v.strip() if isinstance(v, str) and v.strip() else None

    def _int(key: str, default: int) -> int:
        v = _get(key)
        try:
            return int(v) if v is not None else default
        except ValueError:
            log.warning(f"{key}={v!r} is not an integer; using {default}")
            return default

    def _float(key: str, default: float) -> float:
        v = _get(key)
        try:
            return float(v) if v is not None else default
        except ValueError:
            log.warning(f"{key}={v!r} is not a number; using {default}")
            return default

    def _bool(key: str, default: bool) -> bool:
        v = _get(key)
        if v is None:
            return default
        return v.lower() not in {"0", "false", "no", "off"}

    base_var = var_dir(root)
    cfg = ResolverConfig(
        root_dir=root,
        brands=parse_brands(_get("RESOLVER_BRANDS")),
        price_threshold_days=_int("PRICE_UPDATE_THRESHOLD_DAYS", 7),
        availability_threshold_days=_int("AVAILABILITY_UPDATE_THRESHOLD_DAYS", 2),
        store_limit_per_brand=_int("STORE_LIMIT_PER_BRAND", 4),
        adapter_call_timeout=_float("ADAPTER_CALL_TIMEOUT", 60.0),
        http_timeout=_float("HTTP_TIMEOUT", 20.0),
        browser_max_contexts=_int("BROWSER_MAX_CONTEXTS", 4),
        browser_headless=_bool("BROWSER_HEADLESS", True),
        dm_search_timeout=_float("DM_SEARCH_TIMEOUT", 15.0),
        mueller_stock_timeout=_float("MUELLER_STOCK_TIMEOUT", 20.0),
        cache_dir=_get("CACHE_DIR") or os.path.join(base_var, "cache"),
        db_path=_get("RESOLVER_DB_PATH") or os.path.join(base_var, "resolver", "resolver.sqlite3"),
        budni_cookie=_get("BUDNI_COOKIE") or DEFAULT_BUDNI_COOKIE,
        budni_markets_url=_get("BUDNI_MARKETS_URL") or DEFAULT_BUDNI_MARKETS_URL,
        store_search_limit=_int("STORE_SEARCH_LIMIT", 5),
        matcher=MatcherConfig(
            dictionary_index_threshold=_float("DICTIONARY_INDEX_THRESHOLD", 0.7),
            dictionary_accept_score=_float("DICTIONARY_ACCEPT_SCORE", 0.3),
            token_accept_ratio=_float("TOKEN_ACCEPT_RATIO", 0.5),
            candidate_accept_score=_float("CANDIDATE_ACCEPT_SCORE", 0.3),
        ),
    )
    log.debug(f"Resolver config loaded for root {root} with brands {cfg.brands}")
    return cfg
