"""Unit tests for set builder worker scheduling helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, time, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from setbuilder.core.logging import setup_logging
from setbuilder.services.batch import BatchSummary
from setbuilder.workers.set_builder_worker import (
    DEFAULT_RUN_TIME,
    is_run_due,
    parse_daily_run_time,
    resolve_set_type,
    run_scheduled_batch,
)

NOW = datetime(2026, 10, 19, 3, 30, tzinfo=timezone.utc)


def test_resolve_set_type_falls_back_to_multiple_choice() -> None:
    assert resolve_set_type("tf") == "tf"
    assert resolve_set_type("mix") == "mix"
    assert resolve_set_type(None) == "mc"
    assert resolve_set_type("crossword") == "mc"


def test_parse_daily_run_time_reads_fixed_minute_and_hour() -> None:
    assert parse_daily_run_time("15 6 * * *") == time(hour=6, minute=15)
    assert parse_daily_run_time("*/5 * * * *") == DEFAULT_RUN_TIME
    assert parse_daily_run_time("75 2 * * *") == DEFAULT_RUN_TIME
    assert parse_daily_run_time("") == DEFAULT_RUN_TIME


def test_run_is_due_once_per_day_after_scheduled_time(make_config: Callable[..., Any]) -> None:
    assert is_run_due(make_config(), NOW) is True
    assert is_run_due(make_config(cron_schedule="0 4 * * *"), NOW) is False
    assert is_run_due(make_config(enabled=False), NOW) is False
    assert is_run_due(make_config(last_run_at=datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)), NOW) is False
    assert is_run_due(make_config(last_run_at=datetime(2026, 10, 18, 2, 0)), NOW) is True


@pytest.mark.asyncio
async def test_run_scheduled_batch_uses_dated_task_id() -> None:
    builder = AsyncMock()
    builder.build_automated_sets.return_value = BatchSummary(
        success=True,
        processed=2,
        failed=0,
        total_requested=2,
        message="Successfully processed all 2 requested set(s).",
    )
    stop_event = asyncio.Event()

    await run_scheduled_batch(builder, set_type="mix", stop_event=stop_event, now=NOW)

    builder.build_automated_sets.assert_awaited_once_with(
        publish_date=date(2026, 10, 19),
        set_type="mix",
        stop_event=stop_event,
        task_id="scheduled-2026-10-19",
    )


@pytest.mark.asyncio
async def test_run_scheduled_batch_logs_summary_with_logging_configured(
    caplog: pytest.LogCaptureFixture,
) -> None:
    setup_logging()
    builder = AsyncMock()
    builder.build_automated_sets.return_value = BatchSummary(
        success=True,
        processed=1,
        failed=0,
        total_requested=1,
        message="ok",
    )

    worker_logger = logging.getLogger("setbuilder.workers.set_builder_worker")
    worker_logger.addHandler(caplog.handler)
    try:
        await run_scheduled_batch(builder, set_type="mc", stop_event=asyncio.Event(), now=NOW)
    finally:
        worker_logger.removeHandler(caplog.handler)

    records = [record for record in caplog.records if record.getMessage() == "Scheduled set build completed"]
    assert len(records) == 1
    assert records[0].summary_message == "ok"
    assert records[0].task_id == "scheduled-2026-10-19"
