"""
Source registration: validating, classifying and persisting new sources.
"""

import logging
import uuid
from typing import Optional

from sourcewatch.models.domain import MonitoredSource
from sourcewatch.services.data_ingestion.base import (
    DuplicateSourceError,
    InvalidSourceUrlError,
    SourceNotFoundError,
    utc_now,
)
from sourcewatch.services.data_ingestion.feed_detection import FeedDetector
from sourcewatch.services.data_ingestion.urls import canonicalize_url
from sourcewatch.services.storage import ArticleStore, SourceStore

logger = logging.getLogger(__name__)

MIN_FETCH_INTERVAL_HOURS = 1
MAX_FETCH_INTERVAL_HOURS = 168


def validate_interval(hours: int) -> int:
    if not MIN_FETCH_INTERVAL_HOURS <= hours <= MAX_FETCH_INTERVAL_HOURS:
        raise InvalidSourceUrlError(
            f"Fetch interval must be between {MIN_FETCH_INTERVAL_HOURS} "
            f"and {MAX_FETCH_INTERVAL_HOURS} hours"
        )
    return hours


class SourceRegistry:
    """
    Adds, edits and removes monitored sources.

    Registration canonicalizes the URL, rejects duplicates, fetches the URL
    once to classify it as feed or page and stores the result. When a page
    advertises a feed, the feed URL is what gets stored and polled.
    """

    def __init__(
        self,
        sources: SourceStore,
        articles: ArticleStore,
        detector: FeedDetector,
        default_interval_hours: int = 24,
    ):
        self.sources = sources
        self.articles = articles
        self.detector = detector
        self.default_interval_hours = default_interval_hours

    async def register(
        self,
        url: str,
        fetch_interval_hours: Optional[int] = None,
        name: Optional[str] = None,
    ) -> MonitoredSource:
        """
        Start monitoring a URL.

        Args:
            url: Feed or page URL
            fetch_interval_hours: Hours between polls, 1 to 168
            name: Display name overriding the detected one

        Raises:
            InvalidSourceUrlError: Malformed URL or interval out of range
            DuplicateSourceError: The URL is already monitored
            BlockedNetworkError: The URL failed the private-network guard
            FetchError: The URL could not be fetched for classification
        """
        interval = validate_interval(
            fetch_interval_hours if fetch_interval_hours is not None else self.default_interval_hours
        )
        canonical = canonicalize_url(url)

        if await self.sources.get_by_url(canonical) is not None:
            raise DuplicateSourceError("This URL is already being watched")

        detected = await self.detector.detect(canonical)
        feed_url = canonicalize_url(detected.feed_url)
        if feed_url != canonical and await self.sources.get_by_url(feed_url) is not None:
            raise DuplicateSourceError("This URL is already being watched")

        source = MonitoredSource(
            id=str(uuid.uuid4()),
            name=(name or "").strip() or detected.name,
            url=feed_url,
            kind=detected.kind,
            enabled=True,
            last_fetched_at=None,
            fetch_interval_hours=interval,
            created_at=utc_now(),
        )
        source = await self.sources.add(source)
        logger.info(f"Registered {source.kind.value} source {source.name!r} ({source.url})")
        return source

    async def update(
        self,
        source_id: str,
        name: Optional[str] = None,
        enabled: Optional[bool] = None,
        fetch_interval_hours: Optional[int] = None,
    ) -> MonitoredSource:
        """
        Edit a source. Arguments left as None are unchanged.

        Raises:
            SourceNotFoundError: No source has this id
            InvalidSourceUrlError: Interval out of range
        """
        changes = {}
        if name is not None and name.strip():
            changes["name"] = name.strip()
        if enabled is not None:
            changes["enabled"] = enabled
        if fetch_interval_hours is not None:
            changes["fetch_interval_hours"] = validate_interval(fetch_interval_hours)

        if not changes:
            source = await self.sources.get_by_id(source_id)
            if source is None:
                raise SourceNotFoundError(f"Source not found: {source_id}")
            return source

        return await self.sources.update(source_id, **changes)

    async def remove(self, source_id: str) -> int:
        """
        Stop monitoring a source and delete its articles.

        Returns:
            Number of articles deleted

        Raises:
            SourceNotFoundError: No source has this id
        """
        if await self.sources.get_by_id(source_id) is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")

        removed = await self.articles.delete_by_source(source_id)
        await self.sources.delete(source_id)
        logger.info(f"Removed source {source_id} with {removed} articles")
        return removed
