from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

from ..config import Settings, get_settings
from ..extractor import XML_ENTITIES, iter_records
from ..http_client import get_http_client
from ..log import get_logger
from ..models.news import RawFeedRecord

logger = get_logger(__name__)

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5"
_XML_ENCODING_RE = re.compile(rb"<\?xml[^>]*encoding=[\"']([A-Za-z0-9_.:-]+)[\"']")


def is_fetchable_url(url: str | None) -> bool:
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def decode_feed_body(response: httpx.Response) -> str:
    if response.charset_encoding is None:
        match = _XML_ENCODING_RE.search(response.content[:200])
        if match:
            encoding = match.group(1).decode("ascii")
            try:
                return response.content.decode(encoding, errors="replace")
            except LookupError:
                logger.warning("feed_encoding_unknown", encoding=encoding)
    return response.text


@dataclass(slots=True)
class FeedFetcher:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None
    entities: Mapping[str, str] = field(default_factory=lambda: dict(XML_ENTITIES))

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def fetch(self, source_url: str, source_name: str) -> list[RawFeedRecord]:
        if not is_fetchable_url(source_url):
            logger.warning("feed_url_invalid", source=source_name, url=source_url)
            return []

        client = self.client or await get_http_client()
        try:
            response = await client.get(
                source_url.strip(),
                headers={
                    "User-Agent": self.settings.http_user_agent,
                    "Accept": FEED_ACCEPT,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "feed_fetch_failed",
                source=source_name,
                url=source_url,
                status=exc.response.status_code,
            )
            return []
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error(
                "feed_fetch_failed",
                source=source_name,
                url=source_url,
                error=str(exc) or exc.__class__.__name__,
            )
            return []

        records = list(iter_records(decode_feed_body(response), self.entities))
        logger.info("feed_parsed", source=source_name, items=len(records))
        return records
