from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ParseStrategy = Literal["explicit", "inferred"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedSource(_CamelModel):
    id: str | int | None = Field(default=None, description="Storage row id")
    name: str = Field(description="Source display name")
    url: str = Field(description="Feed document URL")
    active: bool = Field(default=True, description="Only active sources are fetched")
    created_at: datetime | None = Field(default=None)


class RawFeedRecord(_CamelModel):
    title: str
    link: str
    raw_date: str | None = None


class NewsItem(_CamelModel):
    title: str = Field(description="Decoded headline")
    link: str = Field(description="Absolute article URL")
    source: str = Field(description="Source display name")
    pub_date: str = Field(default="", description="Raw date string as published")
    timestamp: int | None = Field(
        default=None, description="Epoch milliseconds used for ordering"
    )
    timestamp_utc: int | None = Field(
        default=None, description="Canonical UTC epoch milliseconds"
    )
    display_time: str | None = Field(default=None, description="HH:mm dd/MM")
    source_time_zone: str | None = Field(
        default=None, description="IANA zone used to resolve an ambiguous date"
    )
    parse_strategy: ParseStrategy | None = None

    @property
    def dedup_key(self) -> tuple[str, int | None]:
        return self.link, self.timestamp


class NewsBatch(_CamelModel):
    items: list[NewsItem] = Field(default_factory=list)


class CachedNewsPayload(_CamelModel):
    timestamp: int = Field(description="Epoch milliseconds of the successful fetch")
    items: list[NewsItem] = Field(default_factory=list)
