"""Durable article records with independent price and availability staleness clocks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..db import ResolverDatabase
from ..domain.models import Article, ProductDetails
from ..errors import NotFoundError
from ..logging import get_logger
from .availability import AvailabilityOrchestrator

LOG = get_logger("orchestrator-articles")

MSG_CREATED = "New article created"
MSG_REFRESHED = "Article retrieved/updated"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _first_image(details: Dict[str, ProductDetails]) -> Optional[str]:
    for d in details.values():
        if d.image_url is not None:
            return d.image_url
    return None


class ArticleLifecycleManager:
    """Creates articles on first sight and refreshes only the stale dimension afterwards.

    Records are read, mutated in memory and written back whole; two concurrent
    refreshes of the same EAN race and the later save wins.
    """

    def __init__(
        self,
        db: ResolverDatabase,
        orchestrator: AvailabilityOrchestrator,
        price_threshold_days: int = 7,
        availability_threshold_days: int = 2,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.db = db
        self.orchestrator = orchestrator
        self.price_threshold = timedelta(days=price_threshold_days)
        self.availability_threshold = timedelta(days=availability_threshold_days)
        self._clock = clock

    # --------------- staleness ---------------
    @staticmethod
    def _older_than(stamp: Optional[datetime], now: datetime, threshold: timedelta) -> bool:
        if stamp is None:
            return True
        if stamp.tzinfo is None and now.tzinfo is not None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return now - stamp > threshold

    def is_price_stale(self, article: Article, now: Optional[datetime] = None) -> bool:
        return self._older_than(article.price_last_updated, now or self._clock(), self.price_threshold)

    def is_availability_stale(self, article: Article, now: Optional[datetime] = None) -> bool:
        return self._older_than(
            article.availability_last_updated, now or self._clock(), self.availability_threshold
        )

    # --------------- refresh steps ---------------
    def _availability_refs(self, article: Article, brands: List[str]) -> Dict[str, Optional[str]]:
        pairs: Dict[str, Tuple[Optional[str], Optional[str]]] = {
            b: (article.product_url.get(b), article.article_number.get(b)) for b in brands
        }
        return self.orchestrator.availability_references(pairs)

    async def _refresh_prices(self, article: Article, now: datetime) -> None:
        brands = self.orchestrator.active_brands()
        details = await self.orchestrator.resolve_across_brands(article.ean, brands)
        article.price = {b: details[b].price for b in brands}
        article.product_url = {b: details[b].url for b in brands}
        article.article_number = {
            b: details[b].article_number or article.article_number.get(b) for b in brands
        }
        if article.image_url is None:
            article.image_url = _first_image(details)
        article.price_last_updated = now
        LOG.info(f"Refreshed prices for {article.ean} across {brands}")

    async def _refresh_availability(self, article: Article, now: datetime) -> None:
        brands = self.orchestrator.active_brands()
        results = await self.orchestrator.check_availability_across_brands(
            self._availability_refs(article, brands), brands
        )
        article.store_availability = {b: results[b] for b in brands}
        article.availability_last_updated = now
        LOG.info(f"Refreshed store availability for {article.ean} across {brands}")

    async def _create(self, ean: str, name: str, now: datetime) -> Article:
        brands = self.orchestrator.active_brands()
        details = await self.orchestrator.resolve_across_brands(ean, brands)
        article = Article(
            ean=ean,
            name=name,
            price={b: details[b].price for b in brands},
            product_url={b: details[b].url for b in brands},
            article_number={b: details[b].article_number for b in brands},
            image_url=_first_image(details),
            price_last_updated=now,
            created_at=now,
        )
        await self._refresh_availability(article, now)
        article.updated_at = now
        self.db.save_article(article)
        LOG.info(f"Created article {ean} ({name})")
        return article

    # --------------- public operations ---------------
    async def upsert_and_refresh(self, ean: str, name: str) -> Tuple[str, Article]:
        if not ean or not name:
            raise ValueError("EAN and Name are required")
        now = self._clock()
        article = self.db.get_article(ean)
        if article is None:
            return MSG_CREATED, await self._create(ean, name, now)

        price_stale = self.is_price_stale(article, now)
        availability_stale = self.is_availability_stale(article, now)
        if price_stale:
            await self._refresh_prices(article, now)
        if availability_stale:
            await self._refresh_availability(article, now)
        if price_stale or availability_stale:
            article.updated_at = now
        self.db.save_article(article)
        return MSG_REFRESHED, article

    def _require(self, ean: str) -> Article:
        article = self.db.get_article(ean)
        if article is None:
            raise NotFoundError(f"No article with EAN {ean}")
        return article

    async def force_refresh_prices(self, ean: str) -> Article:
        article = self._require(ean)
        now = self._clock()
        await self._refresh_prices(article, now)
        article.updated_at = now
        self.db.save_article(article)
        return article

    async def force_refresh_availability(self, ean: str) -> Article:
        article = self._require(ean)
        now = self._clock()
        await self._refresh_availability(article, now)
        article.updated_at = now
        self.db.save_article(article)
        return article

    def get(self, ean: str) -> Optional[Article]:
        return self.db.get_article(ean)

    def list(self) -> List[Article]:
        return self.db.list_articles()

    def delete(self, ean: str) -> bool:
        deleted = self.db.delete_article(ean)
        if deleted:
            LOG.info(f"Deleted article {ean}")
        return deleted


__all__ = ["ArticleLifecycleManager", "MSG_CREATED", "MSG_REFRESHED"]
