#!/usr/bin/env python3
"""
CLI tool for feed ingestion.

Usage:
    # Add a source for a user
    python -m scripts.ingest add --user u1 --type youtube https://www.youtube.com/@somechannel

    # Refresh one source, one user's sources, or everything
    python -m scripts.ingest refresh --source <source-id>
    python -m scripts.ingest refresh --user u1
    python -m scripts.ingest refresh --all

    # Run the retention sweep now
    python -m scripts.ingest sweep

    # Backfill missing source icons
    python -m scripts.ingest icons

    # Run the scheduler (continuous)
    python -m scripts.ingest serve
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager

from maifead.config import get_settings
from maifead.core.logging import configure_logging
from maifead.errors import ResolutionError
from maifead.models.database import Database
from maifead.models.domain import RefreshSummary, ShortsFilter, SourceFilters, SourceType
from maifead.services.data_ingestion.http import FeedHttpClient, create_http_client
from maifead.services.data_ingestion.pipeline import FeedPipeline
from maifead.services.data_ingestion.rate_limiter import RateLimiter
from maifead.services.data_ingestion.registration import SourceRegistrar
from maifead.services.data_ingestion.retention import RetentionSweeper
from maifead.services.data_ingestion.scheduler import IngestionScheduler
from maifead.storage.sql import SqlItemRepository

logger = logging.getLogger(__name__)


@asynccontextmanager
async def ingestion_context():
    """Database, HTTP client and repository for one CLI run."""
    settings = get_settings()
    database = Database(settings.database_url)
    await database.create_tables()

    http = FeedHttpClient(
        create_http_client(settings),
        rate_limiter=RateLimiter(settings.host_limits),
        retries=settings.fetch_retries,
    )
    try:
        yield settings, SqlItemRepository(database), http
    finally:
        await http.aclose()
        await database.dispose()


def print_summary(summary: RefreshSummary):
    print("\n" + "=" * 60)
    print("REFRESH RESULTS")
    print("=" * 60)

    for result in summary.results:
        print(result)
        for error in result.errors:
            print(f"    ! {error}")

    print("-" * 60)
    print(f"Sources: {len(summary.results)}  New items: {summary.total_new}  "
          f"Failed: {len(summary.failed)}")


async def cmd_add(args):
    """Resolve and store a new source."""
    filters = SourceFilters(
        youtube_shorts_filter=ShortsFilter(args.shorts),
        reddit_min_upvotes=args.min_upvotes,
    )

    async with ingestion_context() as (settings, repository, http):
        registrar = SourceRegistrar(repository, http, settings)
        try:
            source = await registrar.create_source(
                user_id=args.user,
                name=args.name,
                source_type=SourceType(args.type),
                url=args.url,
                filters=filters,
                retention_days=args.retention_days,
            )
        except ResolutionError as e:
            print(f"Could not add source: {e}")
            return 1

    print(json.dumps(source.model_dump(mode="json"), indent=2))
    return 0


async def cmd_refresh(args):
    """Refresh sources."""
    async with ingestion_context() as (settings, repository, http):
        pipeline = FeedPipeline(repository, http, settings)

        if args.source:
            result = await pipeline.refresh_source_by_id(args.source)
            if result is None:
                print(f"Unknown source: {args.source}")
                return 1
            summary = RefreshSummary(results=[result])
        elif args.user:
            print(f"Refreshing sources for user {args.user}...")
            summary = await pipeline.refresh_user_sources(args.user)
        else:
            print("Refreshing all sources...")
            summary = await pipeline.refresh_all_sources()

    print_summary(summary)
    return 0 if not summary.failed else 2


async def cmd_sweep(args):
    """Run the retention sweep."""
    async with ingestion_context() as (settings, repository, http):
        deleted = await RetentionSweeper(repository).sweep()

    print(f"Deleted {deleted} expired items")
    return 0


async def cmd_icons(args):
    """Backfill missing icons."""
    async with ingestion_context() as (settings, repository, http):
        updated = await SourceRegistrar(repository, http, settings).refresh_missing_icons()

    print(f"Updated {updated} source icons")
    return 0


async def cmd_serve(args):
    """Run continuous scheduler."""
    async with ingestion_context() as (settings, repository, http):
        pipeline = FeedPipeline(repository, http, settings)
        scheduler = IngestionScheduler(pipeline, RetentionSweeper(repository), settings)

        print(f"Starting scheduler (refresh every {settings.fetch_interval_minutes} minutes)")
        print("Press Ctrl+C to stop")

        scheduler.start()
        try:
            if args.fetch_now:
                await scheduler.fetch_now()

            # Keep running until interrupted
            while scheduler.is_running:
                await asyncio.sleep(60)
                status = scheduler.get_status()
                if status["last_fetch"]:
                    logger.debug(f"Last fetch: {status['last_fetch']}")
        finally:
            scheduler.stop()

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Maifead - Feed Ingestion CLI"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, ...)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Add command
    add_parser = subparsers.add_parser("add", help="Add a source")
    add_parser.add_argument("url", help="Feed URL, channel URL, subreddit, handle, ...")
    add_parser.add_argument("--user", "-u", required=True, help="Owning user ID")
    add_parser.add_argument(
        "--type", "-t",
        choices=[t.value for t in SourceType],
        default=SourceType.RSS.value,
        help="Source type (default: rss)"
    )
    add_parser.add_argument("--name", "-n", default="", help="Display name (default: feed title)")
    add_parser.add_argument(
        "--shorts",
        choices=[f.value for f in ShortsFilter],
        default=ShortsFilter.ALL.value,
        help="YouTube Shorts policy (default: all)"
    )
    add_parser.add_argument("--min-upvotes", type=int, default=None, help="Reddit score threshold")
    add_parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Days to keep items (0 = forever, default: DEFAULT_RETENTION_DAYS)"
    )

    # Refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Refresh sources")
    target = refresh_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--source", "-s", help="Refresh one source by ID")
    target.add_argument("--user", "-u", help="Refresh every source of a user")
    target.add_argument("--all", "-a", action="store_true", help="Refresh every source")

    # Sweep command
    subparsers.add_parser("sweep", help="Run the retention sweep")

    # Icons command
    subparsers.add_parser("icons", help="Fetch icons for sources without one")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run continuous scheduler")
    serve_parser.add_argument(
        "--fetch-now",
        action="store_true",
        help="Refresh everything once before waiting for the first interval"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json_output=settings.log_json)

    commands = {
        "add": cmd_add,
        "refresh": cmd_refresh,
        "sweep": cmd_sweep,
        "icons": cmd_icons,
        "serve": cmd_serve,
    }

    try:
        return asyncio.run(commands[args.command](args))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
