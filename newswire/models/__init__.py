from .news import CachedNewsPayload, FeedSource, NewsBatch, NewsItem, RawFeedRecord

__all__ = [
    "CachedNewsPayload",
    "FeedSource",
    "NewsBatch",
    "NewsItem",
    "RawFeedRecord",
]
