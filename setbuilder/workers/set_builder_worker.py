"""Scheduled set builder worker process entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress
from datetime import datetime, time, timezone

from setbuilder.config import settings
from setbuilder.core.database import close_db
from setbuilder.core.logging import setup_logging
from setbuilder.core.redis import close_redis
from setbuilder.repositories.set_builder_repository import BuilderConfig, SqlSetBuilderRepository
from setbuilder.repositories.trivia_repository import SqlTriviaRepository
from setbuilder.services.batch import cooldown
from setbuilder.services.set_builder.automated import AutomatedSetBuilder, SetType
from setbuilder.services.set_builder.config import SetBuilderConfigService
from setbuilder.services.task_manager import TaskManager

logger = logging.getLogger(__name__)

DEFAULT_RUN_TIME = time(hour=2, minute=0)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--set-type",
        choices=["mc", "tf", "wai", "mix"],
        default="mc",
        help="Set format to build; mix cycles through every format.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between schedule checks (defaults to WORKER_POLL_INTERVAL_SECONDS).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single batch immediately, ignoring the schedule, then exit.",
    )
    return parser.parse_args()


def resolve_set_type(value: str | None) -> SetType:
    """Map a CLI value onto a known set type; unknown values fall back to mc."""
    if value == "tf":
        return "tf"
    if value == "wai":
        return "wai"
    if value == "mix":
        return "mix"
    return "mc"


def parse_daily_run_time(cron_schedule: str | None) -> time:
    """Daily run time from the minute and hour fields of a cron expression.

    Only fixed minute/hour values are understood; anything else runs at 02:00.
    """
    if not cron_schedule:
        return DEFAULT_RUN_TIME
    fields = cron_schedule.split()
    if len(fields) < 2 or not fields[0].isdigit() or not fields[1].isdigit():
        return DEFAULT_RUN_TIME

    minute, hour = int(fields[0]), int(fields[1])
    if minute > 59 or hour > 23:
        return DEFAULT_RUN_TIME
    return time(hour=hour, minute=minute)


def is_run_due(config: BuilderConfig, now: datetime) -> bool:
    """True once per UTC day, after the scheduled time, when the builder is enabled."""
    if not config.enabled:
        return False
    if now.time() < parse_daily_run_time(config.cron_schedule):
        return False
    if config.last_run_at is None:
        return True

    last_run = config.last_run_at
    if last_run.tzinfo is None:
        last_run = last_run.replace(tzinfo=timezone.utc)
    return last_run.astimezone(timezone.utc).date() < now.date()


async def run_scheduled_batch(
    builder: AutomatedSetBuilder,
    *,
    set_type: SetType,
    stop_event: asyncio.Event,
    now: datetime,
) -> None:
    task_id = f"scheduled-{now.date().isoformat()}"
    summary = await builder.build_automated_sets(
        publish_date=now.date(),
        set_type=set_type,
        stop_event=stop_event,
        task_id=task_id,
    )
    logger.info(
        "Scheduled set build completed",
        extra={
            "task_id": task_id,
            "processed": summary.processed,
            "failed": summary.failed,
            "summary_message": summary.message,
        },
    )


async def run_worker(
    *,
    set_type: SetType,
    poll_interval: float,
    once: bool,
) -> None:
    """Poll the builder configuration and run a batch when one is due."""
    setup_logging()

    trivia_repository = SqlTriviaRepository()
    set_builder_repository = SqlSetBuilderRepository()
    config_service = SetBuilderConfigService(set_builder_repository)
    builder = AutomatedSetBuilder(
        trivia_repository,
        set_builder_repository,
        config_service=config_service,
        task_manager=TaskManager(),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        if not stop_event.is_set():
            logger.info("Shutdown signal received")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop)

    logger.info(
        "Set builder worker started",
        extra={"set_type": set_type, "poll_interval": poll_interval, "once": once},
    )

    try:
        if once:
            await run_scheduled_batch(
                builder,
                set_type=set_type,
                stop_event=stop_event,
                now=datetime.now(timezone.utc),
            )
            return

        while not stop_event.is_set():
            now = datetime.now(timezone.utc)
            config = await config_service.get_config()
            if config is not None and is_run_due(config, now):
                await run_scheduled_batch(builder, set_type=set_type, stop_event=stop_event, now=now)
            if await cooldown(poll_interval, stop_event):
                break
    finally:
        logger.info("Stopping set builder worker")
        await close_redis()
        await close_db()


def main() -> int:
    """Run the worker process."""
    args = parse_args()
    poll_interval = (
        settings.worker_poll_interval_seconds if args.poll_interval is None else args.poll_interval
    )
    try:
        asyncio.run(
            run_worker(
                set_type=resolve_set_type(args.set_type),
                poll_interval=poll_interval,
                once=args.once,
            )
        )
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
