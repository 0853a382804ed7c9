"""Unit tests for individual trivia set tasks run against hand-built contexts."""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any

import pytest

from setbuilder.services.process_builder import errors
from setbuilder.services.process_builder.types import Goal, PipelineContext, Rule, RunOptions, make_rules
from setbuilder.services.trivia_sets.formats import MULTIPLE_CHOICE, WHO_AM_I, SourceQuestion
from setbuilder.services.trivia_sets.tasks import (
    ASSEMBLE_DATA,
    CREATE_RECORD,
    QUERY_QUESTIONS,
    SELECT_BALANCE,
    AssembleDataTask,
    CandidatePool,
    FinalizedSet,
    PersistedSet,
    SelectBalanceTask,
    Selection,
    ValidateFinalizeTask,
)


def _context(count: int | None = 3, **outputs: Any) -> PipelineContext:
    rules = make_rules(Rule(key="questionCount", value=count, type="number")) if count is not None else {}
    return PipelineContext(
        goal=Goal(text="Legends"),
        rules=rules,
        options=RunOptions(),
        outputs=dict(outputs),
    )


def _wai_record(*source_ids: int) -> dict[str, Any]:
    return {
        "id": 9,
        "title": "Legends Trivia",
        "slug": "legends",
        "question_count": len(source_ids),
        "question_data": [
            {
                "question_id": f"q-{source_id}-{index}",
                "source_id": source_id,
                "question_text": "I won three World Cups. Who am I?",
                "question_type": "who-am-i",
                "correct_answer": "Pele",
            }
            for index, source_id in enumerate(source_ids)
        ],
    }


@pytest.mark.asyncio
async def test_select_balance_shuffles_queried_pool_and_caps_at_request(
    make_question: Callable[..., SourceQuestion],
) -> None:
    pool = CandidatePool(candidates=tuple(make_question(i) for i in range(1, 9)), requested_count=3)

    result = await SelectBalanceTask(random.Random(11)).execute(_context(**{QUERY_QUESTIONS: pool}))

    assert result.success is True
    assert isinstance(result.data, Selection)
    assert len(result.data.selected) == 3
    assert len({question.id for question in result.data.selected}) == 3
    assert result.warnings == []


@pytest.mark.asyncio
async def test_select_balance_without_pool_is_invalid_context() -> None:
    result = await SelectBalanceTask(random.Random(1)).execute(_context())

    assert result.success is False
    assert result.errors[0].code == errors.INVALID_CONTEXT


@pytest.mark.asyncio
async def test_assemble_rejects_malformed_selection() -> None:
    selection = Selection(selected=({"id": 1},), requested_count=1)  # type: ignore[arg-type]

    result = await AssembleDataTask(MULTIPLE_CHOICE, random.Random(1)).execute(
        _context(**{SELECT_BALANCE: selection})
    )

    assert result.success is False
    assert result.errors[0].code == errors.VALIDATION_FAILED


@pytest.mark.asyncio
async def test_validate_finalize_accepts_clean_record() -> None:
    context = _context(2, **{CREATE_RECORD: PersistedSet(record=_wai_record(1, 2))})

    result = await ValidateFinalizeTask(WHO_AM_I).execute(context)

    assert result.success is True
    assert isinstance(result.data, FinalizedSet)
    assert result.warnings == []
    assert result.metadata == {"validated": True, "question_count": 2}


@pytest.mark.asyncio
async def test_validate_finalize_flags_duplicates() -> None:
    context = _context(2, **{CREATE_RECORD: PersistedSet(record=_wai_record(4, 4))})

    result = await ValidateFinalizeTask(WHO_AM_I).execute(context)

    assert result.success is False
    assert [error.message for error in result.errors] == ["Duplicate questions detected in set"]
    assert {error.code for error in result.errors} == {errors.VALIDATION_FAILED}


@pytest.mark.asyncio
async def test_validate_finalize_count_mismatch_is_only_a_warning() -> None:
    context = _context(5, **{CREATE_RECORD: PersistedSet(record=_wai_record(1, 2, 3))})

    result = await ValidateFinalizeTask(WHO_AM_I).execute(context)

    assert result.success is True
    assert result.warnings == ["Question count mismatch: expected 5, got 3"]


@pytest.mark.asyncio
async def test_validate_finalize_reports_every_item_problem() -> None:
    record = _wai_record(1)
    record["title"] = " "
    record["question_data"][0]["correct_answer"] = ""
    record["question_data"][0]["question_type"] = "true-false"
    context = _context(1, **{CREATE_RECORD: PersistedSet(record=record)})

    result = await ValidateFinalizeTask(WHO_AM_I).execute(context)

    assert result.success is False
    assert [error.message for error in result.errors] == [
        "Title is required",
        "Question 1: question_type must be 'who-am-i'",
        "Question 1: correct_answer is required",
    ]


@pytest.mark.asyncio
async def test_validate_finalize_rejects_empty_items() -> None:
    record = _wai_record()
    context = _context(None, **{CREATE_RECORD: PersistedSet(record=record)})

    result = await ValidateFinalizeTask(WHO_AM_I).execute(context)

    assert result.success is False
    assert "question_data cannot be empty" in [error.message for error in result.errors]


@pytest.mark.asyncio
async def test_validate_finalize_without_record_is_invalid_context() -> None:
    result = await ValidateFinalizeTask(WHO_AM_I).execute(_context(**{ASSEMBLE_DATA: object()}))

    assert result.success is False
    assert result.errors[0].code == errors.INVALID_CONTEXT


def test_item_check_accepts_zero_source_id_but_not_a_missing_one() -> None:
    item = _wai_record(0)["question_data"][0]

    assert WHO_AM_I.item_errors(item, 1) == []

    del item["source_id"]
    assert WHO_AM_I.item_errors(item, 1) == ["Question 1: source_id is required"]
