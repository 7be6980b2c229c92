"""
Sweep job: poll monitored sources and ingest their articles.

A scheduled sweep processes every due source; a manual sweep processes one
named source (or every enabled source) regardless of its interval. For each
source, one at a time:

1. Check robots.txt and skip the source if the fetch is disallowed
2. Sleep the crawl delay the origin asks for
3. Fetch the feed or page
4. Parse it according to the source's stored kind
5. Tag every article against the organization profile
6. Store the articles that are not already known

The source's last-fetched time is stamped whatever the outcome, so a
failing source waits for its next interval instead of being retried.
"""
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog

from sourcewatch.config import Settings, get_settings
from sourcewatch.models.database import Database
from sourcewatch.models.domain import (
    ArticleCandidate,
    MonitoredSource,
    OrganizationProfile,
    SourceKind,
    SourceResult,
    SweepResult,
    SweepTrigger,
)
from sourcewatch.services.data_ingestion.base import (
    FetchResponse,
    ParsedArticle,
    RobotsDisallowedError,
    SourceNotFoundError,
    utc_now,
)
from sourcewatch.services.data_ingestion.html_pages import HtmlArticleExtractor
from sourcewatch.services.data_ingestion.robots import RobotsCache, RobotsGate
from sourcewatch.services.data_ingestion.rss import FeedParser
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher
from sourcewatch.services.data_ingestion.tagging import load_profile, tag_article
from sourcewatch.services.data_ingestion.urls import canonicalize_url
from sourcewatch.services.storage import ArticleStore, SourceStore

logger = structlog.get_logger()


class SourceSweepJob:
    """
    Orchestrates fetching, parsing, tagging and storing for monitored sources.

    Collaborators are injected so tests can swap the network, the clock and
    the sleep; `from_settings` builds the production wiring.
    """

    def __init__(
        self,
        sources: SourceStore,
        articles: ArticleStore,
        fetcher: SafeFetcher,
        robots: RobotsGate,
        profile_loader: Callable[[], OrganizationProfile],
        feed_parser: Optional[FeedParser] = None,
        html_extractor: Optional[HtmlArticleExtractor] = None,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sources = sources
        self.articles = articles
        self.fetcher = fetcher
        self.robots = robots
        self.profile_loader = profile_loader
        self.feed_parser = feed_parser or FeedParser()
        self.html_extractor = html_extractor or HtmlArticleExtractor()
        self.user_agent = user_agent or fetcher.user_agent
        self.sleep = sleep
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        database: Database,
        settings: Optional[Settings] = None,
        robots_cache: Optional[RobotsCache] = None,
    ) -> "SourceSweepJob":
        settings = settings or get_settings()
        fetcher = SafeFetcher(
            user_agent=settings.user_agent,
            timeout=settings.fetch_timeout_seconds,
            max_redirects=settings.max_redirects,
            max_response_bytes=settings.max_response_bytes,
        )
        robots = RobotsGate(
            fetcher,
            cache=robots_cache or RobotsCache(ttl_seconds=settings.robots_cache_ttl_seconds),
            timeout=settings.robots_timeout_seconds,
        )
        return cls(
            sources=SourceStore(database),
            articles=ArticleStore(database),
            fetcher=fetcher,
            robots=robots,
            profile_loader=lambda: load_profile(settings.org_profile_path),
            feed_parser=FeedParser(excerpt_max_chars=settings.excerpt_max_chars),
            html_extractor=HtmlArticleExtractor(
                max_articles=settings.html_max_articles,
                excerpt_max_chars=settings.excerpt_max_chars,
            ),
            user_agent=settings.user_agent,
        )

    async def run_sweep(
        self,
        trigger: SweepTrigger = SweepTrigger.SCHEDULED,
        target_source_id: Optional[str] = None,
    ) -> SweepResult:
        """
        Process sources and aggregate the outcome.

        Args:
            trigger: Scheduled sweeps take due sources; manual sweeps skip
                the due filter
            target_source_id: Process only this source (implies manual)

        Returns:
            SweepResult; per-source failures are recorded in it, never raised

        Raises:
            SourceNotFoundError: `target_source_id` does not exist
        """
        start_time = utc_now()

        if target_source_id is not None:
            trigger = SweepTrigger.MANUAL
            source = await self.sources.get_by_id(target_source_id)
            if source is None:
                raise SourceNotFoundError(f"Source not found: {target_source_id}")
            selected = [source]
        elif trigger == SweepTrigger.MANUAL:
            selected = [s for s in await self.sources.list_all() if s.enabled]
        else:
            selected = await self.sources.list_due(self.clock())

        logger.info("Starting sweep", trigger=trigger.value, sources=len(selected))
        if not selected:
            return SweepResult.from_results(trigger, [])

        results = []
        for source in selected:
            result = await self.process_source(source)
            logger.info(str(result))
            results.append(result)

        sweep = SweepResult.from_results(trigger, results)
        logger.info(
            "Sweep completed",
            trigger=trigger.value,
            elapsed_seconds=(utc_now() - start_time).total_seconds(),
            sources_processed=sweep.sources_processed,
            new_articles=sweep.total_new_articles,
            errors=sweep.total_errors,
        )
        return sweep

    async def process_source(self, source: MonitoredSource) -> SourceResult:
        """
        Fetch, parse and ingest one source, then stamp its last-fetched time.

        The profile is read per source, so an unreadable profile fails each
        source like any other error instead of aborting the sweep.
        """
        result = SourceResult(source_id=source.id, source_name=source.name)
        base_url = source.url

        try:
            profile = self.profile_loader()
            response = await self._fetch(source)
            base_url = response.url
            parsed = self._parse(source, response)
        except Exception as e:
            logger.warning("Error fetching source", source=source.name, url=source.url, error=str(e))
            result.errors.append(f"Failed to fetch {source.name}: {e}")
            parsed = []

        for article in parsed:
            try:
                if await self._ingest(source, base_url, article, profile):
                    result.new_articles += 1
            except Exception as e:
                logger.warning(
                    "Error processing article",
                    source=source.name,
                    url=article.url,
                    error=str(e),
                )
                result.errors.append(f"Failed to process: {article.title}")

        try:
            await self.sources.update_last_fetched(source.id, self.clock())
        except Exception as e:
            logger.error("Error stamping source", source=source.name, error=str(e))
            result.errors.append(f"Failed to update {source.name}: {e}")

        return result

    async def _fetch(self, source: MonitoredSource) -> FetchResponse:
        decision = await self.robots.check(source.url, self.user_agent)
        if not decision.allowed:
            raise RobotsDisallowedError(decision.reason)

        if decision.crawl_delay:
            logger.debug("Honouring crawl delay", source=source.name, seconds=decision.crawl_delay)
            await self.sleep(decision.crawl_delay)

        return await self.fetcher.fetch(source.url)

    def _parse(self, source: MonitoredSource, response: FetchResponse) -> list[ParsedArticle]:
        if source.kind == SourceKind.FEED:
            return self.feed_parser.parse(response.content)
        return self.html_extractor.extract(response.text, page_url=source.url, base_url=response.url)

    async def _ingest(
        self,
        source: MonitoredSource,
        base_url: str,
        article: ParsedArticle,
        profile: OrganizationProfile,
    ) -> bool:
        """Tag and store one article. True if it was not known before."""
        tags = tag_article(article.title, article.excerpt, profile)
        candidate = ArticleCandidate(
            source_id=source.id,
            source_name=source.name,
            title=article.title,
            url=canonicalize_url(article.url, base=base_url),
            published_at=article.published_at,
            excerpt=article.excerpt,
            matched_keywords=tags.matched_keywords,
            relevance_score=tags.relevance_score,
        )
        added = await self.articles.add(candidate, fetched_at=self.clock())
        return added.was_new


async def run_source_sweep(
    trigger: SweepTrigger = SweepTrigger.SCHEDULED,
    target_source_id: Optional[str] = None,
    database_url: Optional[str] = None,
) -> SweepResult:
    """Entry point for running one sweep against the configured database."""
    settings = get_settings()
    database = Database(database_url or settings.database_url)

    # Create tables if they don't exist
    await database.create_tables()

    try:
        job = SourceSweepJob.from_settings(database, settings)
        return await job.run_sweep(trigger, target_source_id)
    finally:
        await database.dispose()
