from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..http_client import get_http_client
from ..log import get_logger
from ..models.news import NewsBatch, NewsItem
from ..timezones import DEFAULT_POLICY, ZonePolicy
from .cache import NewsCache
from .normalizer import prepare_news_items

logger = get_logger(__name__)

FAILURE_NOTICE = "לא הצלחנו לטעון חדשות. ננסה שוב בקרוב."


class NewsFetchError(RuntimeError):
    """The ingestion endpoint could not be reached or answered with an error."""


@dataclass(slots=True)
class NewsClient:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None
    cache: NewsCache | None = None
    policy: ZonePolicy = DEFAULT_POLICY
    items: list[NewsItem] = field(default_factory=list)
    last_update: datetime | None = None
    _tasks: set[asyncio.Task] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()
        if self.cache is None:
            self.cache = NewsCache(self.settings.news_cache_path)

    @property
    def endpoint(self) -> str:
        if self.settings.news_api_url is None:
            raise NewsFetchError("NEWS_API_URL is not configured")
        return str(self.settings.news_api_url)

    def load_cached(self) -> list[NewsItem]:
        cached = self.cache.read()
        if cached is None:
            return self.items
        self.items = cached.items
        self.last_update = datetime.fromtimestamp(cached.timestamp / 1000).astimezone()
        return self.items

    async def fetch_latest_news(self) -> NewsBatch:
        client = self.client or await get_http_client()
        headers = {"Content-Type": "application/json"}
        if self.settings.news_api_key:
            headers["apikey"] = self.settings.news_api_key
            headers["Authorization"] = f"Bearer {self.settings.news_api_key}"
        try:
            response = await client.post(self.endpoint, headers=headers)
        except httpx.HTTPError as exc:
            raise NewsFetchError(f"Failed to fetch news: {exc}") from exc
        if not response.is_success:
            raise NewsFetchError(
                f"Failed to fetch news ({response.status_code}): "
                f"{response.text or 'Unknown error'}"
            )
        try:
            return NewsBatch.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise NewsFetchError(f"Malformed news payload: {exc}") from exc

    async def refresh(self, now: datetime | None = None) -> list[NewsItem]:
        try:
            batch = await self.fetch_latest_news()
        except NewsFetchError as exc:
            logger.error("news_refresh_failed", error=str(exc), notice=FAILURE_NOTICE)
            return self.items

        self.items = prepare_news_items(batch.items, now=now, policy=self.policy)
        payload = self.cache.write(self.items, now=now)
        self.last_update = datetime.fromtimestamp(payload.timestamp / 1000).astimezone()
        logger.info("news_refreshed", items=len(self.items))
        return self.items

    async def poll(
        self,
        on_update: Callable[[list[NewsItem]], None] | None = None,
        *,
        interval: float | None = None,
        iterations: int | None = None,
    ) -> None:
        period = self.settings.refresh_interval_seconds if interval is None else interval
        count = 0
        while iterations is None or count < iterations:
            task = asyncio.create_task(self._refresh_and_notify(on_update))
            self._tasks.add(task)
            task.add_done_callback(self._collect)
            count += 1
            if iterations is not None and count >= iterations:
                break
            await asyncio.sleep(period)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _collect(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "news_refresh_failed",
                error=str(exc) or exc.__class__.__name__,
                notice=FAILURE_NOTICE,
                exc_info=exc,
            )

    async def _refresh_and_notify(
        self, on_update: Callable[[list[NewsItem]], None] | None
    ) -> None:
        items = await self.refresh()
        if on_update is not None:
            on_update(items)
