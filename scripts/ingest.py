#!/usr/bin/env python3
"""
CLI tool for source monitoring.

Usage:
    # Poll every source that is due
    python -m scripts.ingest sweep

    # Poll one source now, ignoring its interval
    python -m scripts.ingest fetch --source-id <id>

    # Start monitoring a feed or news page
    python -m scripts.ingest add-source https://example.org/news --interval 12

    # List, edit and remove sources
    python -m scripts.ingest sources
    python -m scripts.ingest update-source <id> --disable
    python -m scripts.ingest remove-source <id>

    # Review extracted articles
    python -m scripts.ingest articles --min-relevance 30
    python -m scripts.ingest promote <article-id>

    # Run scheduled sweeps (continuous)
    python -m scripts.ingest serve
"""

import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager

# Add parent directory to path for imports
sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from sourcewatch.config import get_settings
from sourcewatch.jobs.source_sweep import SourceSweepJob
from sourcewatch.main import configure_logging, serve
from sourcewatch.models.database import Database
from sourcewatch.models.domain import SweepResult, SweepTrigger
from sourcewatch.services.data_ingestion.base import IngestionError
from sourcewatch.services.data_ingestion.feed_detection import FeedDetector
from sourcewatch.services.data_ingestion.rss import FeedParser
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher
from sourcewatch.services.registration import SourceRegistry
from sourcewatch.services.storage import ArticleStore, SourceStore


@asynccontextmanager
async def open_database():
    settings = get_settings()
    database = Database(settings.database_url)
    await database.create_tables()
    try:
        yield database
    finally:
        await database.dispose()


def create_registry(database: Database) -> SourceRegistry:
    """Create a source registry with the configured fetch limits."""
    settings = get_settings()
    fetcher = SafeFetcher(
        user_agent=settings.user_agent,
        timeout=settings.fetch_timeout_seconds,
        max_redirects=settings.max_redirects,
        max_response_bytes=settings.max_response_bytes,
    )
    detector = FeedDetector(
        fetcher,
        FeedParser(excerpt_max_chars=settings.excerpt_max_chars),
        max_candidates=settings.feed_link_candidates,
    )
    return SourceRegistry(
        SourceStore(database),
        ArticleStore(database),
        detector,
        default_interval_hours=settings.default_fetch_interval_hours,
    )


def print_sweep(result: SweepResult):
    print("\n" + "=" * 60)
    print(f"SWEEP RESULTS ({result.trigger.value})")
    print("=" * 60)

    for source_result in result.per_source:
        print(source_result)
        for error in source_result.errors:
            print(f"    {error}")

    print("-" * 60)
    print(f"Sources processed: {result.sources_processed}")
    print(f"New articles: {result.total_new_articles}")
    print(f"Errors: {result.total_errors}")


async def cmd_sweep(args):
    """Poll due sources, or every enabled source with --all."""
    trigger = SweepTrigger.MANUAL if args.all else SweepTrigger.SCHEDULED
    async with open_database() as database:
        job = SourceSweepJob.from_settings(database)
        result = await job.run_sweep(trigger)

    print_sweep(result)
    return 0 if result.total_errors == 0 else 1


async def cmd_fetch(args):
    """Poll one source now."""
    async with open_database() as database:
        job = SourceSweepJob.from_settings(database)
        result = await job.run_sweep(SweepTrigger.MANUAL, target_source_id=args.source_id)

    print_sweep(result)
    return 0 if result.total_errors == 0 else 1


async def cmd_add_source(args):
    """Register a feed or page."""
    async with open_database() as database:
        source = await create_registry(database).register(
            args.url,
            fetch_interval_hours=args.interval,
            name=args.name,
        )

    print(f"Watching {source.name} ({source.kind.value})")
    print(f"  ID: {source.id}")
    print(f"  URL: {source.url}")
    print(f"  Interval: every {source.fetch_interval_hours}h")
    return 0


async def cmd_sources(args):
    """List monitored sources."""
    async with open_database() as database:
        sources = await SourceStore(database).list_all()

    print("\n" + "=" * 50)
    print("MONITORED SOURCES")
    print("=" * 50)
    print(f"Total sources: {len(sources)}")
    print()

    for source in sources:
        status = "enabled" if source.enabled else "disabled"
        print(f"  {source.name} [{source.kind.value}, {status}]")
        print(f"    ID: {source.id}")
        print(f"    URL: {source.url}")
        print(f"    Interval: {source.fetch_interval_hours}h")
        print(f"    Last fetched: {source.last_fetched_at.isoformat() if source.last_fetched_at else 'never'}")
        print()

    return 0


async def cmd_update_source(args):
    """Rename, enable/disable or reschedule a source."""
    async with open_database() as database:
        source = await create_registry(database).update(
            args.source_id,
            name=args.name,
            enabled=args.enabled,
            fetch_interval_hours=args.interval,
        )

    status = "enabled" if source.enabled else "disabled"
    print(f"Updated {source.name} [{status}, every {source.fetch_interval_hours}h]")
    return 0


async def cmd_remove_source(args):
    """Stop monitoring a source and delete its articles."""
    async with open_database() as database:
        removed = await create_registry(database).remove(args.source_id)

    print(f"Removed source {args.source_id} ({removed} articles deleted)")
    return 0


async def cmd_articles(args):
    """List extracted articles, newest first."""
    async with open_database() as database:
        articles = await ArticleStore(database).list(
            source_id=args.source_id,
            min_relevance=args.min_relevance,
            limit=args.limit,
        )

    if args.output:
        with open(args.output, "w") as f:
            json.dump([a.model_dump(mode="json") for a in articles], f, indent=2)
        print(f"{len(articles)} articles saved to: {args.output}")
        return 0

    for article in articles:
        marker = "*" if article.promoted else " "
        print(f"\n{marker} [{article.relevance_score:3d}] {article.title}")
        print(f"    ID: {article.id}")
        print(f"    Source: {article.source_name}")
        print(f"    URL: {article.url}")
        print(f"    Date: {article.published_at or 'unknown'}")
        if article.matched_keywords:
            print(f"    Keywords: {', '.join(article.matched_keywords)}")

    return 0


async def cmd_promote(args):
    """Mark an article as promoted."""
    async with open_database() as database:
        article = await ArticleStore(database).mark_promoted(args.article_id)

    if article is None:
        print(f"Article not found: {args.article_id}")
        return 1
    print(f"Promoted: {article.title}")
    return 0


async def cmd_delete_article(args):
    """Delete one article."""
    async with open_database() as database:
        deleted = await ArticleStore(database).delete(args.article_id)

    if not deleted:
        print(f"Article not found: {args.article_id}")
        return 1
    print(f"Deleted article {args.article_id}")
    return 0


async def cmd_serve(args):
    """Run the scheduled sweep service."""
    print(f"Starting scheduler (checking every {get_settings().sweep_check_interval_minutes} minutes)")
    print("Press Ctrl+C to stop")
    await serve()
    return 0


COMMANDS = {
    "sweep": cmd_sweep,
    "fetch": cmd_fetch,
    "add-source": cmd_add_source,
    "sources": cmd_sources,
    "update-source": cmd_update_source,
    "remove-source": cmd_remove_source,
    "articles": cmd_articles,
    "promote": cmd_promote,
    "delete-article": cmd_delete_article,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="sourcewatch - Source Monitoring CLI"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sweep command
    sweep_parser = subparsers.add_parser("sweep", help="Poll sources that are due")
    sweep_parser.add_argument(
        "--all", "-a",
        action="store_true",
        help="Poll every enabled source, ignoring intervals"
    )

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Poll one source now")
    fetch_parser.add_argument("--source-id", "-s", required=True, help="Source ID")

    # Source management
    add_parser = subparsers.add_parser("add-source", help="Start monitoring a URL")
    add_parser.add_argument("url", help="Feed or news page URL")
    add_parser.add_argument(
        "--interval", "-i",
        type=int,
        default=None,
        help="Fetch interval in hours, 1-168 (default: 24)"
    )
    add_parser.add_argument("--name", "-n", help="Display name (default: detected title)")

    subparsers.add_parser("sources", help="List monitored sources")

    update_parser = subparsers.add_parser("update-source", help="Edit a source")
    update_parser.add_argument("source_id", help="Source ID")
    update_parser.add_argument("--name", "-n", help="New display name")
    update_parser.add_argument("--interval", "-i", type=int, help="Fetch interval in hours, 1-168")
    toggle = update_parser.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enabled", action="store_true", default=None)
    toggle.add_argument("--disable", dest="enabled", action="store_false")

    remove_parser = subparsers.add_parser("remove-source", help="Stop monitoring a source")
    remove_parser.add_argument("source_id", help="Source ID")

    # Article review
    articles_parser = subparsers.add_parser("articles", help="List extracted articles")
    articles_parser.add_argument("--source-id", "-s", help="Only articles from this source")
    articles_parser.add_argument(
        "--min-relevance", "-r",
        type=int,
        help="Minimum relevance score (0-100)"
    )
    articles_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=50,
        help="Max articles to show (default: 50)"
    )
    articles_parser.add_argument("--output", "-o", help="Output file for articles (JSON)")

    promote_parser = subparsers.add_parser("promote", help="Mark an article as promoted")
    promote_parser.add_argument("article_id", help="Article ID")

    delete_parser = subparsers.add_parser("delete-article", help="Delete an article")
    delete_parser.add_argument("article_id", help="Article ID")

    # Serve command
    subparsers.add_parser("serve", help="Run scheduled sweeps continuously")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging()

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except IngestionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
