"""
Basket Verifier Data Sources
Persisted inputs read by the resolution pipeline
"""

from .chainlink_feeds import (
    PriceFeedRecord,
    FeedDirectory,
    InMemoryFeedDirectory,
    SQLiteFeedDirectory,
    feed_path_key,
)

__all__ = [
    "PriceFeedRecord",
    "FeedDirectory",
    "InMemoryFeedDirectory",
    "SQLiteFeedDirectory",
    "feed_path_key",
]
