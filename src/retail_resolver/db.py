from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .domain.models import Article, AvailabilityRecord, Store
from .logging import get_logger

LOG = get_logger("db")


SCHEMA_SQL = """
-- 1) Durable product records, one per EAN; per-brand maps are JSON objects
CREATE TABLE IF NOT EXISTS articles (
  ean                        TEXT PRIMARY KEY,
  name                       TEXT NOT NULL,
  price                      TEXT NOT NULL DEFAULT '{}',
  price_last_updated         TEXT,
  product_url                TEXT NOT NULL DEFAULT '{}',
  article_number             TEXT NOT NULL DEFAULT '{}',
  store_availability         TEXT NOT NULL DEFAULT '{}',
  availability_last_updated  TEXT,
  image_url                  TEXT,
  created_at                 TEXT DEFAULT (datetime('now')),
  updated_at                 TEXT DEFAULT (datetime('now'))
);

-- 2) Saved stores, capped per brand by the store directory
CREATE TABLE IF NOT EXISTS stores (
  store_id       TEXT PRIMARY KEY,
  store_number   TEXT,
  brand          TEXT NOT NULL,
  address        TEXT NOT NULL DEFAULT '{}',
  phone          TEXT,
  coordinates    TEXT NOT NULL DEFAULT '[]',
  opening_hours  TEXT NOT NULL DEFAULT '{}',
  created_at     TEXT DEFAULT (datetime('now'))
);

-- 3) Singleton settings as key/value JSON
CREATE TABLE IF NOT EXISTS settings (
  key    TEXT PRIMARY KEY,
  value  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_stores_brand ON stores(brand);
"""


def _dt_to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="seconds") if value else None


def _text_to_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        LOG.warning(f"Unparseable timestamp in database: {value!r}")
        return None


def _loads(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


class ResolverDatabase:
    """SQLite store for articles, saved stores and settings.

    - Ensures schema on construction.
    - Provides a context-managed connection method.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = os.path.abspath(db_path)
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        LOG.info(f"Resolver DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError as e:
                LOG.debug(f"WAL journal unavailable: {e}")
            cur.executescript(SCHEMA_SQL)
            conn.commit()

    # --------------- Articles ---------------
    @staticmethod
    def _row_to_article(row: sqlite3.Row) -> Article:
        availability_raw = _loads(row["store_availability"], {})
        availability = {
            brand: [AvailabilityRecord.from_dict(r) for r in records if isinstance(r, dict)]
            for brand, records in availability_raw.items()
            if isinstance(records, list)
        }
        return Article(
            ean=row["ean"],
            name=row["name"],
            price=_loads(row["price"], {}),
            price_last_updated=_text_to_dt(row["price_last_updated"]),
            product_url=_loads(row["product_url"], {}),
            article_number=_loads(row["article_number"], {}),
            store_availability=availability,
            availability_last_updated=_text_to_dt(row["availability_last_updated"]),
            image_url=row["image_url"],
            created_at=_text_to_dt(row["created_at"]),
            updated_at=_text_to_dt(row["updated_at"]),
        )

    def get_article(self, ean: str) -> Optional[Article]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM articles WHERE ean = ?;", (ean,)).fetchone()
        return self._row_to_article(row) if row else None

    def list_articles(self) -> List[Article]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM articles ORDER BY name COLLATE NOCASE;").fetchall()
        return [self._row_to_article(r) for r in rows]

    def save_article(self, article: Article) -> None:
        """Insert or overwrite the whole record; no version check."""
        availability = {
            brand: [r.to_dict() for r in records] for brand, records in article.store_availability.items()
        }
        created = _dt_to_text(article.created_at) or _dt_to_text(article.updated_at)
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO articles (
                  ean, name, price, price_last_updated, product_url, article_number,
                  store_availability, availability_last_updated, image_url, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, datetime('now')), COALESCE(?, datetime('now')))
                ON CONFLICT(ean) DO UPDATE SET
                  name = excluded.name,
                  price = excluded.price,
                  price_last_updated = excluded.price_last_updated,
                  product_url = excluded.product_url,
                  article_number = excluded.article_number,
                  store_availability = excluded.store_availability,
                  availability_last_updated = excluded.availability_last_updated,
                  image_url = excluded.image_url,
                  updated_at = excluded.updated_at;
                """,
                (
                    article.ean,
                    article.name,
                    json.dumps(article.price),
                    _dt_to_text(article.price_last_updated),
                    json.dumps(article.product_url),
                    json.dumps(article.article_number),
                    json.dumps(availability),
                    _dt_to_text(article.availability_last_updated),
                    article.image_url,
                    created,
                    _dt_to_text(article.updated_at),
                ),
            )
            conn.commit()

    def delete_article(self, ean: str) -> bool:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM articles WHERE ean = ?;", (ean,))
            conn.commit()
            return cur.rowcount > 0

    # --------------- Stores ---------------
    @staticmethod
    def _row_to_store(row: sqlite3.Row) -> Store:
        return Store(
            store_id=row["store_id"],
            store_number=row["store_number"],
            brand=row["brand"],
            address=_loads(row["address"], {}),
            phone=row["phone"],
            coordinates=_loads(row["coordinates"], []),
            opening_hours=_loads(row["opening_hours"], {}),
        )

    def get_store(self, store_id: str) -> Optional[Store]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM stores WHERE store_id = ?;", (store_id,)).fetchone()
        return self._row_to_store(row) if row else None

    def list_stores(self, brand: str) -> List[Store]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM stores WHERE brand = ? ORDER BY rowid;", (brand,)
            ).fetchall()
        return [self._row_to_store(r) for r in rows]

    def count_stores(self, brand: str) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM stores WHERE brand = ?;", (brand,)).fetchone()
        return int(row[0]) if row else 0

    def insert_store(self, store: Store) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO stores (store_id, store_number, brand, address, phone, coordinates, opening_hours)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    store.store_id,
                    store.store_number,
                    store.brand,
                    json.dumps(store.address),
                    store.phone,
                    json.dumps(store.coordinates),
                    json.dumps(store.opening_hours),
                ),
            )
            conn.commit()

    def delete_store(self, store_id: str) -> bool:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM stores WHERE store_id = ?;", (store_id,))
            conn.commit()
            return cur.rowcount > 0

    # --------------- Settings ---------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?;", (key,)).fetchone()
        return _loads(row["value"], default) if row else default

    def set_setting(self, key: str, value: Any) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value;
                """,
                (key, json.dumps(value)),
            )
            conn.commit()


__all__ = ["ResolverDatabase", "SCHEMA_SQL"]
