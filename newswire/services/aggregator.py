from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone

import httpx

from ..config import Settings, get_settings
from ..dates import resolve_timestamp, to_epoch_ms
from ..log import get_logger
from ..models.news import FeedSource, NewsItem, RawFeedRecord
from ..timezones import DEFAULT_POLICY, ZonePolicy
from .feeds import FeedFetcher
from .sources import SourceRepository

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dedupe_items(items: Iterable[NewsItem]) -> list[NewsItem]:
    seen: set[tuple[str, int | None]] = set()
    unique: list[NewsItem] = []
    for item in items:
        if item.dedup_key in seen:
            continue
        seen.add(item.dedup_key)
        unique.append(item)
    return unique


def find_order_violation(
    items: Sequence[NewsItem],
) -> tuple[NewsItem, NewsItem] | None:
    for previous, current in zip(items, items[1:]):
        if (previous.timestamp or 0) < (current.timestamp or 0):
            return previous, current
    return None


@dataclass(slots=True)
class AggregationService:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None
    fetcher: FeedFetcher | None = None
    repository: SourceRepository | None = None
    policy: ZonePolicy | None = None
    clock: Callable[[], datetime] = field(default=_utcnow)

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.policy is None:
            self.policy = replace(
                DEFAULT_POLICY, fallback_zone=self.settings.fallback_time_zone
            )
        if self.fetcher is None:
            self.fetcher = FeedFetcher(settings=self.settings, client=self.client)
        if self.repository is None:
            self.repository = SourceRepository(settings=self.settings, client=self.client)

    async def run(self) -> list[NewsItem]:
        sources = await self.repository.list_active()
        return await self.aggregate(sources)

    async def aggregate(self, sources: Sequence[FeedSource]) -> list[NewsItem]:
        now = self.clock()
        active = [source for source in sources if source.active]
        results: list[list[NewsItem]] = [[] for _ in active]
        cursor = 0

        async def worker() -> None:
            nonlocal cursor
            while cursor < len(active):
                index = cursor
                cursor += 1
                results[index] = await self._process_source(active[index], now)

        pool_size = min(self.settings.aggregation_concurrency, len(active))
        await asyncio.gather(*(worker() for _ in range(pool_size)))

        cutoff = to_epoch_ms(now - timedelta(hours=self.settings.freshness_hours))
        merged = [item for chunk in results for item in chunk]
        fresh = [item for item in merged if item.timestamp_utc >= cutoff]
        items = dedupe_items(fresh)
        items.sort(key=lambda item: item.timestamp_utc, reverse=True)

        violation = find_order_violation(items)
        if violation is not None:
            logger.warning(
                "feed_order_violation",
                previous=violation[0].link,
                current=violation[1].link,
            )

        logger.info(
            "aggregation_complete",
            sources=len(active),
            parsed=len(merged),
            fresh=len(fresh),
            items=len(items),
        )
        return items

    async def _process_source(self, source: FeedSource, now: datetime) -> list[NewsItem]:
        try:
            records = await self.fetcher.fetch(source.url, source.name)
        except Exception:
            logger.exception("feed_processing_failed", source=source.name, url=source.url)
            return []

        items: list[NewsItem] = []
        for record in records:
            item = self.build_item(record, source.name, now)
            if item is not None:
                items.append(item)
        return items

    def build_item(
        self, record: RawFeedRecord, source_name: str, now: datetime
    ) -> NewsItem | None:
        parsed = resolve_timestamp(
            record.raw_date,
            record.link,
            source_name,
            policy=self.policy,
            now=now,
            future_tolerance=timedelta(minutes=self.settings.future_tolerance_minutes),
            deviation_warning=timedelta(minutes=self.settings.deviation_warning_minutes),
        )
        if parsed is None:
            logger.warning(
                "item_date_unparseable",
                source=source_name,
                link=record.link,
                raw_date=record.raw_date,
            )
            return None

        return NewsItem(
            title=record.title,
            link=record.link,
            source=source_name,
            pub_date=record.raw_date or "",
            timestamp=parsed.timestamp_utc,
            timestamp_utc=parsed.timestamp_utc,
            display_time=parsed.display_time,
            source_time_zone=parsed.zone,
            parse_strategy=parsed.parse_strategy,
        )
