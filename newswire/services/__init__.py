from .aggregator import AggregationService
from .feeds import FeedFetcher
from .sources import SourceListError, SourceRepository

__all__ = ["AggregationService", "FeedFetcher", "SourceListError", "SourceRepository"]
