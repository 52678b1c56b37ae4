from datetime import datetime, timezone

import httpx
import orjson
import pytest
import respx
from structlog.testing import capture_logs

from newswire.client import NewsCache, NewsClient
from newswire.client.api import NewsFetchError
from newswire.config import Settings
from newswire.dates import to_epoch_ms
from newswire.models import NewsItem

ENDPOINT = "https://api.example.com/fetch-rss"
NOW = datetime(2025, 11, 12, 20, 0, tzinfo=timezone.utc)
RECENT = to_epoch_ms(datetime(2025, 11, 12, 19, 0, tzinfo=timezone.utc))

PAYLOAD = {
    "items": [
        {
            "title": "כותרת",
            "link": "https://www.ynet.co.il/1",
            "source": "ynet",
            "pubDate": "Wed, 12 Nov 2025 19:00:00 GMT",
            "timestamp": RECENT,
            "timestampUtc": RECENT,
            "displayTime": "19:00 12/11",
            "sourceTimeZone": None,
            "parseStrategy": "explicit",
        },
        {
            "title": "ישן",
            "link": "https://www.ynet.co.il/2",
            "source": "ynet",
            "pubDate": "Mon, 10 Nov 2025 10:00:00 GMT",
            "timestamp": RECENT - 3 * 24 * 3600 * 1000,
        },
    ]
}


def client_settings(tmp_path) -> Settings:
    return Settings(
        news_api_url=ENDPOINT,
        news_api_key="anon-key",
        news_cache_path=tmp_path / "cache.json",
    )


@pytest.mark.asyncio
async def test_refresh_prepares_and_caches(tmp_path) -> None:
    settings = client_settings(tmp_path)
    async with httpx.AsyncClient() as http:
        news_client = NewsClient(settings=settings, client=http)
        with respx.mock(assert_all_called=True) as mock:
            route = mock.post(ENDPOINT).respond(200, json=PAYLOAD)
            items = await news_client.refresh(now=NOW)

    request = route.calls.last.request
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"
    assert [item.link for item in items] == ["https://www.ynet.co.il/1"]

    cached = NewsCache(settings.news_cache_path).read()
    assert cached is not None
    assert cached.timestamp == to_epoch_ms(NOW)
    assert [item.link for item in cached.items] == ["https://www.ynet.co.il/1"]
    raw = orjson.loads(settings.news_cache_path.read_bytes())
    assert raw["items"][0]["timestampUtc"] == RECENT


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_items(tmp_path) -> None:
    settings = client_settings(tmp_path)
    previous = [NewsItem(title="t", link="https://a/1", source="ynet", timestamp=RECENT)]
    async with httpx.AsyncClient() as http:
        news_client = NewsClient(settings=settings, client=http, items=previous)
        with respx.mock(assert_all_called=True) as mock:
            mock.post(ENDPOINT).respond(500, json={"error": "boom"})
            items = await news_client.refresh(now=NOW)

    assert items == previous
    assert not settings.news_cache_path.exists()


@pytest.mark.asyncio
async def test_fetch_latest_news_raises_on_network_error(tmp_path) -> None:
    async with httpx.AsyncClient() as http:
        news_client = NewsClient(settings=client_settings(tmp_path), client=http)
        with respx.mock(assert_all_called=True) as mock:
            mock.post(ENDPOINT).mock(side_effect=httpx.ConnectError("offline"))
            with pytest.raises(NewsFetchError):
                await news_client.fetch_latest_news()


@pytest.mark.asyncio
async def test_poll_fires_independent_refreshes(tmp_path) -> None:
    updates: list[int] = []
    async with httpx.AsyncClient() as http:
        news_client = NewsClient(settings=client_settings(tmp_path), client=http)
        with respx.mock(assert_all_called=True) as mock:
            route = mock.post(ENDPOINT).respond(200, json={"items": []})
            await news_client.poll(
                lambda items: updates.append(len(items)), interval=0, iterations=2
            )

    assert route.call_count == 2
    assert updates == [0, 0]


@pytest.mark.asyncio
async def test_poll_logs_failing_update_callback(tmp_path) -> None:
    def on_update(items: list[NewsItem]) -> None:
        raise RuntimeError("render failed")

    async with httpx.AsyncClient() as http:
        news_client = NewsClient(settings=client_settings(tmp_path), client=http)
        with respx.mock(assert_all_called=True) as mock:
            route = mock.post(ENDPOINT).respond(200, json={"items": []})
            with capture_logs() as logs:
                await news_client.poll(on_update, interval=0, iterations=2)

    assert route.call_count == 2
    failures = [entry for entry in logs if entry["event"] == "news_refresh_failed"]
    assert [entry["error"] for entry in failures] == ["render failed", "render failed"]
    assert not news_client._tasks


def test_load_cached_seeds_items(tmp_path) -> None:
    settings = client_settings(tmp_path)
    item = NewsItem(title="t", link="https://a/1", source="ynet", timestamp=RECENT)
    NewsCache(settings.news_cache_path).write([item], now=NOW)

    news_client = NewsClient(settings=settings)

    assert news_client.load_cached() == [item]
    assert news_client.last_update is not None


def test_invalid_cache_reads_as_none(tmp_path) -> None:
    path = tmp_path / "cache.json"
    path.write_text('{"items": "nope"}', encoding="utf-8")

    assert NewsCache(path).read() is None
    assert NewsCache(tmp_path / "missing.json").read() is None
