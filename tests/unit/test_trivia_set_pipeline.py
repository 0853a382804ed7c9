"""End-to-end tests for the six-step trivia set pipelines against an in-memory store."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from typing import Any

import pytest

from setbuilder.config import settings
from setbuilder.services.process_builder import errors
from setbuilder.services.process_builder.types import Goal, Rule, RunOptions, make_rules
from setbuilder.services.trivia_sets import naming
from setbuilder.services.trivia_sets.builder import build_trivia_set
from setbuilder.services.trivia_sets.formats import (
    MULTIPLE_CHOICE,
    TRUE_FALSE,
    WHO_AM_I,
    SourceQuestion,
)
from setbuilder.services.trivia_sets.tasks import FinalizedSet, Selection


def _count(value: Any, rule_type: str = "number") -> dict[str, Rule]:
    return make_rules(Rule(key="questionCount", value=value, type=rule_type))


@pytest.mark.asyncio
async def test_legends_short_pool_builds_smaller_set_with_warning(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in (1, 2, 3)])

    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(5),
        repository=trivia_repository,
        rng=random.Random(7),
    )

    assert result.status == "success"
    assert (
        "Only 3 questions available, but 5 requested. Will create set with available questions."
        in result.warnings
    )
    assert isinstance(result.final_result, FinalizedSet)
    record = result.final_result.record
    assert record["question_count"] == 3
    assert record["title"] == "Legends Trivia"
    assert record["slug"] == "legends"
    assert record["status"] == "draft"
    assert len(trivia_repository.sets["mc"]) == 1
    assert sorted(item["source_id"] for item in record["question_data"]) == [1, 2, 3]
    assert result.metadata["candidate_count"] == 3
    assert result.metadata["validated"] is True


@pytest.mark.asyncio
async def test_legends_without_candidates_fails_and_persists_nothing(trivia_repository: Any) -> None:
    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(5),
        repository=trivia_repository,
    )

    assert result.status == "error"
    assert result.first_error is not None
    assert result.first_error.code == errors.INSUFFICIENT_DATA
    assert result.first_error.task_id == "query-questions"
    assert len(result.task_results) == 1
    assert trivia_repository.sets == {}
    assert "insert_set" not in trivia_repository.calls


@pytest.mark.asyncio
async def test_slug_collision_retries_with_timestamp_suffix(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
    monkeypatch: Any,
) -> None:
    monkeypatch.setattr(naming, "now_ms", lambda: 1700000000000)
    trivia_repository.add_questions(TRUE_FALSE, [make_question(i, correct_answer=i % 2 == 0) for i in (1, 2)])

    first = await build_trivia_set(TRUE_FALSE, Goal(text="Legends"), _count(2), repository=trivia_repository)
    second = await build_trivia_set(TRUE_FALSE, Goal(text="Legends"), _count(2), repository=trivia_repository)

    assert first.status == "success"
    assert second.status == "success"
    slugs = [record["slug"] for record in trivia_repository.sets["tf"]]
    assert slugs == ["legends", "legends-1700000000000"]
    assert "Slug 'legends' already exists; saved as 'legends-1700000000000'" in second.warnings


@pytest.mark.asyncio
async def test_slug_collision_without_retries_is_database_error(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
    monkeypatch: Any,
) -> None:
    monkeypatch.setattr(settings, "slug_retry_attempts", 0)
    trivia_repository.add_questions(WHO_AM_I, [make_question(1, correct_answer="Pele")])

    await build_trivia_set(WHO_AM_I, Goal(text="Legends"), _count(1), repository=trivia_repository)
    result = await build_trivia_set(WHO_AM_I, Goal(text="Legends"), _count(1), repository=trivia_repository)

    assert result.status == "error"
    assert result.first_error is not None
    assert result.first_error.code == errors.DATABASE_ERROR
    assert result.first_error.task_id == "create-record"
    assert len(trivia_repository.sets["wai"]) == 1


@pytest.mark.asyncio
async def test_pre_supplied_candidates_skip_query_and_keep_order(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    candidates = [make_question(3, usage=0), make_question(1, usage=1), make_question(2, usage=2)]

    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(2),
        repository=trivia_repository,
        candidates=candidates,
    )

    assert result.status == "success"
    assert "list_published" not in trivia_repository.calls
    assert result.metadata["using_pre_selected"] is True
    selection = result.task_results[1].data
    assert isinstance(selection, Selection)
    assert [question.id for question in selection.selected] == [3, 1]


@pytest.mark.asyncio
async def test_true_false_items_carry_boolean_answers(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(
        TRUE_FALSE,
        [make_question(1, correct_answer=True), make_question(2, correct_answer=False)],
    )

    result = await build_trivia_set(TRUE_FALSE, Goal(text="Legends"), _count(2), repository=trivia_repository)

    assert result.status == "success"
    items = {item["source_id"]: item for item in result.final_result.record["question_data"]}
    assert items[1]["correct_answer"] is True
    assert items[2]["correct_answer"] is False
    assert {item["question_type"] for item in items.values()} == {"true-false"}


@pytest.mark.asyncio
async def test_assembled_items_are_unique_and_well_formed(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(i) for i in range(1, 11)])

    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(10),
        repository=trivia_repository,
        rng=random.Random(3),
    )

    assert result.status == "success"
    assert result.warnings == ()
    items = result.final_result.record["question_data"]
    assert len({item["source_id"] for item in items}) == 10
    for item in items:
        assert item["question_id"].startswith(f"q-{item['source_id']}-")
        assert item["points"] == 10
        assert item["time_limit"] == 30
        assert sorted(item["wrong_answers"]) == ["Wrong 1", "Wrong 2", "Wrong 3"]


@pytest.mark.asyncio
async def test_dry_run_skips_persistence(
    trivia_repository: Any,
    make_question: Callable[..., SourceQuestion],
) -> None:
    trivia_repository.add_questions(MULTIPLE_CHOICE, [make_question(1), make_question(2)])

    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(2),
        RunOptions(dry_run=True),
        repository=trivia_repository,
    )

    assert result.status == "success"
    assert "Dry run: trivia set was not saved" in result.warnings
    assert result.final_result.record["id"] is None
    assert trivia_repository.sets == {}


@pytest.mark.asyncio
async def test_mistyped_rule_aborts_before_query(trivia_repository: Any) -> None:
    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count("5"),
        repository=trivia_repository,
    )

    assert result.status == "error"
    assert result.task_results == ()
    assert result.errors[0].code == errors.EXECUTION_ERROR
    assert result.errors[0].task_id == "query-questions"
    assert trivia_repository.calls == []


@pytest.mark.asyncio
async def test_blank_theme_is_invalid_input(trivia_repository: Any) -> None:
    result = await build_trivia_set(MULTIPLE_CHOICE, Goal(text="   "), _count(5), repository=trivia_repository)

    assert result.status == "error"
    assert result.first_error is not None
    assert result.first_error.code == errors.INVALID_INPUT


@pytest.mark.asyncio
async def test_store_failure_is_database_error(trivia_repository: Any) -> None:
    trivia_repository.failing_operations.add("list_published")

    result = await build_trivia_set(MULTIPLE_CHOICE, Goal(text="Legends"), _count(5), repository=trivia_repository)

    assert result.status == "error"
    assert result.first_error is not None
    assert result.first_error.code == errors.DATABASE_ERROR


@pytest.mark.asyncio
async def test_slow_store_is_timeout(
    trivia_repository: Any,
    monkeypatch: Any,
) -> None:
    async def _slow_list_published(*_args: Any, **_kwargs: Any) -> list[SourceQuestion]:
        await asyncio.sleep(1)
        return []

    monkeypatch.setattr(settings, "store_call_timeout_seconds", 0.01)
    monkeypatch.setattr(trivia_repository, "list_published", _slow_list_published)

    result = await build_trivia_set(MULTIPLE_CHOICE, Goal(text="Legends"), _count(5), repository=trivia_repository)

    assert result.status == "error"
    assert result.first_error is not None
    assert result.first_error.code == errors.TIMEOUT


@pytest.mark.asyncio
async def test_partial_results_run_every_task_after_failure(trivia_repository: Any) -> None:
    result = await build_trivia_set(
        MULTIPLE_CHOICE,
        Goal(text="Legends"),
        _count(5),
        RunOptions(allow_partial_results=True),
        repository=trivia_repository,
    )

    assert result.status == "partial"
    assert len(result.task_results) == 6
    assert [error.code for error in result.errors[1:]] == [errors.INVALID_CONTEXT] * 5
