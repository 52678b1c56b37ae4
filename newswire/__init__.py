"""Israeli news feed aggregation with timezone-aware date normalization."""

__version__ = "0.1.0"
