"""Unit tests for the scheduled batch builder."""

from __future__ import annotations

import asyncio
import itertools
import random
from collections.abc import Callable
from datetime import date
from typing import Any

import pytest

from setbuilder.services.set_builder.automated import (
    AutomatedSetBuilder,
    RunParameters,
    set_type_for_index,
)
from setbuilder.services.trivia_sets import naming
from setbuilder.services.trivia_sets.formats import (
    MULTIPLE_CHOICE,
    TRUE_FALSE,
    WHO_AM_I,
    SourceQuestion,
)

PUBLISH_DATE = date(2026, 10, 19)


@pytest.fixture(autouse=True)
def _unique_timestamps(monkeypatch: Any) -> None:
    counter = itertools.count(1700000000000)
    monkeypatch.setattr(naming, "now_ms", lambda: next(counter))


def _builder(trivia_repository: Any, set_builder_repository: Any, **kwargs: Any) -> AutomatedSetBuilder:
    return AutomatedSetBuilder(
        trivia_repository,
        set_builder_repository,
        cooldown_seconds=0,
        rng=random.Random(5),
        **kwargs,
    )


def test_mix_cycles_through_formats() -> None:
    assert [set_type_for_index("mix", i) for i in range(4)] == ["mc", "tf", "wai", "mc"]
    assert set_type_for_index("tf", 3) == "tf"


def test_run_parameters_prefer_overrides(make_config: Callable[..., Any]) -> None:
    config = make_config(themes=("Players",), questions_per_set=10, balance_themes=True)

    assert RunParameters.resolve(config, None) == RunParameters(
        questions_per_set=10,
        themes=("Players",),
        balance_themes=True,
    )
    assert RunParameters.resolve(
        config,
        {"questions_per_set": 4, "themes": None, "balance_themes": False},
    ) == RunParameters(questions_per_set=4, themes=None, balance_themes=False)


@pytest.mark.asyncio
async def test_builds_requested_sets_and_tracks_usage(
    trivia_repository: Any,
    set_builder_repository: Any,
    task_manager: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 7)])

    summary = await _builder(trivia_repository, set_builder_repository, task_manager=task_manager).build_automated_sets(
        publish_date=PUBLISH_DATE,
        task_id="run-1",
    )

    assert summary.success is True
    assert summary.processed == 2
    assert summary.failed == 0
    assert summary.message == "Successfully processed all 2 requested set(s)."
    assert len(set_builder_repository.collection) == 2
    used_ids: list[int] = []
    for entry in set_builder_repository.collection:
        assert entry["publish_date"] == PUBLISH_DATE
        assert entry["sets"][0]["type"] == "mc"
        stored = entry["sets"][0]["set"]
        assert stored["question_count"] == 3
        used_ids.extend(item["source_id"] for item in stored["question_data"])
    assert sorted(used_ids) == [1, 2, 3, 4, 5, 6]
    assert all(trivia_repository.usage_of(MULTIPLE_CHOICE, i) == 1 for i in range(1, 7))
    assert set_builder_repository.config.last_run_status == "success"
    assert task_manager.states["run-1"]["status"] == "completed"
    assert task_manager.states["run-1"]["summary"]["processed"] == 2


@pytest.mark.asyncio
async def test_exhausted_pool_stops_early_with_short_set_warning(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 5)])

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
        number_of_sets=3,
    )

    assert summary.processed == 2
    assert summary.failed == 0
    assert summary.stopped_early is True
    assert summary.success is True
    assert "Set 2 (MC): only 1 questions available, 3 requested" in summary.warnings
    assert summary.message == (
        "Processed 2 set(s) (all available). "
        "Requested 3, but only 2 could be attempted before candidates ran out."
    )
    assert set_builder_repository.config.last_run_status == "success"


@pytest.mark.asyncio
async def test_empty_bank_builds_nothing_and_records_failed_run(
    trivia_repository: Any,
    set_builder_repository: Any,
) -> None:
    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
    )

    assert summary.processed == 0
    assert summary.success is False
    assert summary.stopped_early is True
    assert set_builder_repository.collection == []
    assert set_builder_repository.config.last_run_status == "failed"


@pytest.mark.asyncio
async def test_mix_builds_one_set_per_format(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 4)])
    trivia_repository.add_questions(TRUE_FALSE, [make_question(i, correct_answer=True) for i in range(1, 4)])
    trivia_repository.add_questions(WHO_AM_I, [make_question(i, correct_answer="Pele") for i in range(1, 4)])

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
        number_of_sets=3,
        set_type="mix",
    )

    assert summary.processed == 3
    assert [entry["sets"][0]["type"] for entry in set_builder_repository.collection] == ["mc", "tf", "wai"]
    assert [result.set_type for result in summary.results] == ["mc", "tf", "wai"]


@pytest.mark.asyncio
async def test_theme_override_drives_goal_and_selection(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(
        MULTIPLE_CHOICE,
        [make_question(i, theme="Players") for i in range(1, 4)]
        + [make_question(i, theme="Venues") for i in range(4, 7)],
    )

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
        number_of_sets=1,
        overrides={"themes": ["Players"]},
    )

    assert summary.processed == 1
    stored = set_builder_repository.collection[0]["sets"][0]["set"]
    assert stored["slug"] == "players"
    assert {item["source_id"] for item in stored["question_data"]} == {1, 2, 3}


@pytest.mark.asyncio
async def test_missing_config_fails_the_run(trivia_repository: Any, set_builder_repository: Any) -> None:
    set_builder_repository.config = None

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets()

    assert summary.success is False
    assert summary.message == "Failed to load configuration"
    assert summary.errors == ["Failed to load configuration"]


@pytest.mark.asyncio
async def test_store_failures_count_as_failed_sets(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 7)])
    trivia_repository.failing_operations.add("insert_set")

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
    )

    assert summary.processed == 0
    assert summary.failed == 2
    assert summary.success is False
    assert summary.errors[0].startswith("Set 1 (MC): [create-record]")
    assert summary.message == "Processed 0 set(s), 2 failed. 0 set(s) were skipped due to errors."
    assert set_builder_repository.collection == []
    assert all(trivia_repository.usage_of(MULTIPLE_CHOICE, i) == 0 for i in range(1, 7))
    assert set_builder_repository.config.last_run_status == "failed"


@pytest.mark.asyncio
async def test_usage_fallback_still_counts_set_as_processed(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.atomic_increment_supported = False
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 4)])

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
        number_of_sets=1,
    )

    assert summary.processed == 1
    assert all(trivia_repository.usage_of(MULTIPLE_CHOICE, i) == 1 for i in range(1, 4))


@pytest.mark.asyncio
async def test_stop_event_cancels_before_next_set(
    trivia_repository: Any,
    set_builder_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 7)])
    stop_event = asyncio.Event()
    stop_event.set()

    summary = await _builder(trivia_repository, set_builder_repository).build_automated_sets(
        publish_date=PUBLISH_DATE,
        stop_event=stop_event,
    )

    assert summary.cancelled is True
    assert summary.processed == 0
    assert set_builder_repository.collection == []
