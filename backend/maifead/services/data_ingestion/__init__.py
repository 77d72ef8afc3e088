"""
Data ingestion services for Maifead.

Leaf modules only are re-exported here; import the pipeline, registrar
and scheduler from their own modules.
"""

from maifead.services.data_ingestion.rate_limiter import RateLimiter, host_family
from maifead.services.data_ingestion.http import FeedHttpClient, create_http_client
from maifead.services.data_ingestion.feed_parser import FeedFetcher, parse_feed
from maifead.services.data_ingestion.filters import FilterOutcome, evaluate_entry
from maifead.services.data_ingestion.retention import RetentionSweeper

__all__ = [
    "RateLimiter",
    "host_family",
    "FeedHttpClient",
    "create_http_client",
    "FeedFetcher",
    "parse_feed",
    "FilterOutcome",
    "evaluate_entry",
    "RetentionSweeper",
]
