"""
Data ingestion pipeline for sourcewatch.

This module provides the pieces a sweep is assembled from:
- Safe fetching behind a private-network guard
- robots.txt compliance with per-origin caching
- Feed-type detection for new sources
- RSS/Atom parsing and heuristic HTML article extraction
- Keyword relevance tagging
- Due-for-fetch scheduling
"""

from sourcewatch.services.data_ingestion.base import (
    BlockedNetworkError,
    DuplicateSourceError,
    FeedParseError,
    FetchError,
    FetchFailedError,
    FetchResponse,
    FetchTimeoutError,
    IngestionError,
    InvalidSourceUrlError,
    ParsedArticle,
    RobotsDisallowedError,
    SourceNotFoundError,
)
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher
from sourcewatch.services.data_ingestion.robots import RobotsCache, RobotsDecision, RobotsGate
from sourcewatch.services.data_ingestion.feed_detection import FeedDetector
from sourcewatch.services.data_ingestion.rss import FeedParser
from sourcewatch.services.data_ingestion.html_pages import ContainerStrategy, HtmlArticleExtractor
from sourcewatch.services.data_ingestion.tagging import load_profile, tag_article
from sourcewatch.services.data_ingestion.scheduler import SweepScheduler, build_scheduler, select_due
from sourcewatch.services.data_ingestion.urls import canonicalize_url

__all__ = [
    # Errors
    "IngestionError",
    "InvalidSourceUrlError",
    "DuplicateSourceError",
    "SourceNotFoundError",
    "BlockedNetworkError",
    "RobotsDisallowedError",
    "FetchError",
    "FetchTimeoutError",
    "FetchFailedError",
    "FeedParseError",
    # Records
    "FetchResponse",
    "ParsedArticle",
    # Pipeline
    "SafeFetcher",
    "RobotsCache",
    "RobotsDecision",
    "RobotsGate",
    "FeedDetector",
    "FeedParser",
    "ContainerStrategy",
    "HtmlArticleExtractor",
    "load_profile",
    "tag_article",
    "SweepScheduler",
    "build_scheduler",
    "select_due",
    "canonicalize_url",
]
