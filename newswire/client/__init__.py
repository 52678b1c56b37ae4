from .api import NewsClient, NewsFetchError
from .cache import NewsCache
from .normalizer import normalized_display_time, prepare_news_items

__all__ = [
    "NewsCache",
    "NewsClient",
    "NewsFetchError",
    "normalized_display_time",
    "prepare_news_items",
]
