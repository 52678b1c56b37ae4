from __future__ import annotations

from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..http_client import get_http_client
from ..log import get_logger
from ..models.news import FeedSource

logger = get_logger(__name__)


class SourceListError(RuntimeError):
    """The list of feed sources could not be loaded; the whole run fails."""


@dataclass(slots=True)
class SourceRepository:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def list_active(self) -> list[FeedSource]:
        if self.settings.feed_sources is not None:
            sources = [source for source in self.settings.feed_sources if source.active]
            logger.info("sources_loaded", origin="settings", count=len(sources))
            return sources

        if self.settings.supabase_url is None or not self.settings.supabase_key:
            raise SourceListError("Source storage is not configured")

        client = self.client or await get_http_client()
        base = str(self.settings.supabase_url).rstrip("/")
        url = f"{base}/rest/v1/{self.settings.sources_table}"
        key = self.settings.supabase_key
        try:
            response = await client.get(
                url,
                params={"select": "*", "active": "eq.true"},
                headers={"apikey": key, "Authorization": f"Bearer {key}"},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise SourceListError(
                f"Source query failed ({exc.response.status_code}): {exc.response.text}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceListError(f"Source query failed: {exc}") from exc

        if not isinstance(payload, list):
            raise SourceListError("Source query returned an unexpected payload")
        try:
            sources = [FeedSource.model_validate(row) for row in payload]
        except ValidationError as exc:
            raise SourceListError(f"Invalid source row: {exc}") from exc

        sources = [source for source in sources if source.active]
        logger.info("sources_loaded", origin="storage", count=len(sources))
        return sources
