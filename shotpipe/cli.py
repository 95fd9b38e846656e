"""Command-line entry point for the screenshot pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .captions import CaptionError
from .config import ConfigError, PipelineConfig
from .health import start_health_server
from .ledger import LedgerError, migrate_history
from .pipeline import Pipeline
from .publisher import PublishError

logger = logging.getLogger("shotpipe.cli")

PUBLISHING_COMMANDS = {"post", "run"}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Discover Steam Community screenshots and publish them to Instagram.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("post", help="Select and publish one screenshot now")
    subparsers.add_parser("status", help="Print ledger, cache and configuration counters")
    subparsers.add_parser("clear-cache", help="Drop cached crawl results")
    subparsers.add_parser("reset-history", help="Forget every published screenshot")
    subparsers.add_parser("reset-captions", help="Forget caption usage patterns")
    run_parser = subparsers.add_parser("run", help="Post on the configured cron schedule")
    run_parser.add_argument(
        "--schedule",
        default=None,
        help="Cron expression overriding POSTING_SCHEDULE",
    )
    run_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Health check port overriding PORT (0 disables the server)",
    )
    subparsers.add_parser(
        "migrate-history", help="Copy the JSON history file into the database ledger"
    )
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


async def _post(pipeline: Pipeline) -> None:
    start = time.perf_counter()
    result = await pipeline.post_once()
    elapsed = time.perf_counter() - start
    if result:
        logger.info("Posting cycle finished in %.2fs: %s", elapsed, result.published_id)
    else:
        logger.info("Posting cycle finished in %.2fs without publishing", elapsed)


async def _scheduled_post(pipeline: Pipeline) -> None:
    logger.info("Scheduled post triggered")
    try:
        await pipeline.post_once()
    except Exception:  # pylint: disable=broad-except
        logger.exception("Scheduled posting run failed")


async def _run_scheduler(pipeline: Pipeline, schedule: str, port: int) -> None:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _scheduled_post,
        CronTrigger.from_crontab(schedule),
        args=[pipeline],
        id="post_screenshot",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduling posts with cron: %s", schedule)
    runner = await start_health_server(pipeline, port=port) if port else None
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        if runner is not None:
            await runner.cleanup()


def run_command(pipeline: Pipeline, args: argparse.Namespace) -> None:
    if args.command == "post":
        asyncio.run(_post(pipeline))
    elif args.command == "status":
        print(json.dumps(pipeline.status(), indent=2))
    elif args.command == "clear-cache":
        pipeline.clear_cache()
    elif args.command == "reset-history":
        logger.warning("Resetting posted history...")
        pipeline.reset_history()
    elif args.command == "reset-captions":
        logger.warning("Resetting caption history...")
        pipeline.reset_captions()
    elif args.command == "run":
        schedule = args.schedule or pipeline.config.schedule
        port = pipeline.config.health_port if args.port is None else args.port
        try:
            asyncio.run(_run_scheduler(pipeline, schedule, port))
        except KeyboardInterrupt:
            logger.info("Shutting down")


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = PipelineConfig.from_env()
        if args.command == "migrate-history":
            migrate_history(config)
            return 0
        config.validate(require_publishing=args.command in PUBLISHING_COMMANDS)
        pipeline = Pipeline.from_config(config)
    except (ConfigError, LedgerError) as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    try:
        run_command(pipeline, args)
    except (CaptionError, LedgerError, PublishError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        pipeline.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
