from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import orjson
from pydantic import ValidationError

from ..dates import to_epoch_ms
from ..log import get_logger
from ..models.news import CachedNewsPayload, NewsItem

logger = get_logger(__name__)


@dataclass(slots=True)
class NewsCache:
    """Last successful batch, kept only as a placeholder while loading."""

    path: Path

    def read(self) -> CachedNewsPayload | None:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("news_cache_read_failed", path=str(self.path), error=str(exc))
            return None
        try:
            return CachedNewsPayload.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as exc:
            logger.warning("news_cache_invalid", path=str(self.path), error=str(exc))
            return None

    def write(self, items: list[NewsItem], now: datetime | None = None) -> CachedNewsPayload:
        payload = CachedNewsPayload(
            timestamp=to_epoch_ms(now or datetime.now(timezone.utc)), items=items
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(orjson.dumps(payload.model_dump(mode="json", by_alias=True)))
        except OSError as exc:
            logger.warning("news_cache_write_failed", path=str(self.path), error=str(exc))
        return payload
