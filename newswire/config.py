from functools import lru_cache
from pathlib import Path

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.news import FeedSource


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", extra="ignore", populate_by_name=True
    )

    http_timeout: float = Field(10.0, gt=0, alias="HTTP_TIMEOUT")
    http_max_connections: int = Field(20, ge=1, alias="HTTP_MAX_CONNECTIONS")
    http_max_keepalive: int = Field(10, ge=1, alias="HTTP_MAX_KEEPALIVE")
    http_user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        alias="HTTP_USER_AGENT",
    )

    supabase_url: HttpUrl | None = Field(default=None, alias="SUPABASE_URL")
    supabase_key: str | None = Field(
        default=None, alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    sources_table: str = Field("rss_sources", alias="SOURCES_TABLE")
    feed_sources: list[FeedSource] | None = Field(default=None, alias="FEED_SOURCES")

    aggregation_concurrency: int = Field(5, ge=1, alias="AGGREGATION_CONCURRENCY")
    freshness_hours: float = Field(24.0, gt=0, alias="FRESHNESS_HOURS")
    future_tolerance_minutes: float = Field(
        10.0, ge=0, alias="FUTURE_TOLERANCE_MINUTES"
    )
    deviation_warning_minutes: float = Field(
        180.0, gt=0, alias="DEVIATION_WARNING_MINUTES"
    )
    fallback_time_zone: str = Field("Asia/Jerusalem", alias="FALLBACK_TIME_ZONE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    news_api_url: HttpUrl | None = Field(default=None, alias="NEWS_API_URL")
    news_api_key: str | None = Field(default=None, alias="NEWS_API_KEY")
    news_cache_path: Path = Field(
        Path(".newswire-cache.json"), alias="NEWS_CACHE_PATH"
    )
    refresh_interval_seconds: float = Field(
        60.0, gt=0, alias="REFRESH_INTERVAL_SECONDS"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
