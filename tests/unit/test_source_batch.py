"""Unit tests for sequential source content generation batches."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from setbuilder.core.exceptions import ExternalAPIError, UnknownTrackError
from setbuilder.integrations.generation import GenerationOutcome
from setbuilder.services.process_builder import errors
from setbuilder.services.source_batch import SourceBatchProcessor

TRACK = "trivia_multiple_choice"
USAGE_KEY = "multiple-choice"


def _processor(source_repository: Any, generator: Any, **kwargs: Any) -> SourceBatchProcessor:
    return SourceBatchProcessor(source_repository, generator, cooldown_seconds=0, **kwargs)


@pytest.mark.asyncio
async def test_processes_sources_in_id_order_and_marks_them_used(
    source_repository: Any,
    generator: Any,
    task_manager: Any,
) -> None:
    summary = await _processor(source_repository, generator, task_manager=task_manager).run(
        TRACK, 2, task_id="gen-1"
    )

    assert summary.success is True
    assert summary.processed == 2
    assert summary.message == "Successfully processed all 2 requested source(s)."
    assert generator.calls == [(TRACK, 1), (TRACK, 2)]
    assert source_repository.used_for == {1: [USAGE_KEY], 2: [USAGE_KEY], 3: []}
    assert task_manager.states["gen-1"]["status"] == "completed"


@pytest.mark.asyncio
async def test_zero_items_is_empty_result_and_source_stays_unprocessed(
    source_repository: Any,
    generator: Any,
) -> None:
    generator.outcomes[1] = GenerationOutcome(success=True, message="nothing", item_count=0)

    summary = await _processor(source_repository, generator).run(TRACK, 2)

    assert summary.processed == 1
    assert summary.failed == 1
    assert summary.success is False
    assert summary.results[0].error_code == errors.EMPTY_RESULT
    assert source_repository.used_for[1] == []
    assert generator.calls == [(TRACK, 1), (TRACK, 2)]


@pytest.mark.asyncio
async def test_generation_errors_are_counted_per_source(
    source_repository: Any,
    generator: Any,
) -> None:
    generator.outcomes[1] = ExternalAPIError("Generation", "API error: 500 - down")
    generator.outcomes[2] = GenerationOutcome(success=False, message="bad structure", error_type="structural")

    summary = await _processor(source_repository, generator).run(TRACK, 3)

    assert summary.processed == 1
    assert summary.failed == 2
    assert [result.error_code for result in summary.results] == [
        errors.TASK_EXECUTION_FAILED,
        errors.TASK_EXECUTION_FAILED,
        None,
    ]
    assert summary.errors[0] == "Source 1: Generation error: Generation API error: API error: 500 - down"
    assert summary.message == "Processed 1 source(s), 2 failed. 0 source(s) were skipped due to errors."


@pytest.mark.asyncio
async def test_slow_generation_is_timeout(source_repository: Any) -> None:
    class _SlowGenerator:
        async def generate(self, track_key: str, source_id: int, source_text: str) -> GenerationOutcome:
            await asyncio.sleep(1)
            return GenerationOutcome(success=True, message="late", item_count=1)

    summary = await _processor(source_repository, _SlowGenerator(), generation_timeout=0.01).run(TRACK, 1)

    assert summary.failed == 1
    assert summary.results[0].error_code == errors.TIMEOUT
    assert source_repository.used_for[1] == []


@pytest.mark.asyncio
async def test_running_out_of_sources_stops_early(source_repository: Any, generator: Any) -> None:
    summary = await _processor(source_repository, generator).run(TRACK, 5)

    assert summary.processed == 3
    assert summary.stopped_early is True
    assert summary.success is True
    assert summary.message == (
        "Processed 3 source(s) (all available). "
        "Requested 5, but only 3 could be attempted before candidates ran out."
    )


@pytest.mark.asyncio
async def test_mark_used_failure_keeps_success(source_repository: Any, generator: Any) -> None:
    source_repository.fail_mark_used = True

    summary = await _processor(source_repository, generator).run(TRACK, 1)

    assert summary.processed == 1
    assert summary.success is True


@pytest.mark.asyncio
async def test_unknown_track_is_rejected(source_repository: Any, generator: Any) -> None:
    with pytest.raises(UnknownTrackError):
        await _processor(source_repository, generator).run("trivia_crossword", 1)
