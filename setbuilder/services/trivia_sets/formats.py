"""Content format descriptors for the three trivia set pipelines."""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from setbuilder.core.exceptions import UnknownSetTypeError
from setbuilder.models.trivia import (
    MultipleChoiceTriviaSet,
    TriviaMultipleChoice,
    TriviaTrueFalse,
    TriviaWhoAmI,
    TrueFalseTriviaSet,
    WhoAmITriviaSet,
)

DEFAULT_POINTS = 10
DEFAULT_TIME_LIMIT_SECONDS = 30


@dataclass(frozen=True)
class SourceQuestion:
    """A published candidate question, detached from any session."""

    id: int
    question_text: str
    correct_answer: str | bool
    theme: str | None = None
    category: str | None = None
    difficulty: str | None = None
    tags: tuple[str, ...] = ()
    explanation: str | None = None
    status: str = "published"
    global_usage_count: int = 0
    wrong_answers: tuple[str, ...] = field(default_factory=tuple)


def shuffled(items: Sequence[Any], rng: random.Random) -> list[Any]:
    """Fisher-Yates shuffle into a new list."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def _base_item(question: SourceQuestion, index: int, question_type: str) -> dict[str, Any]:
    return {
        "question_id": f"q-{question.id}-{index}",
        "source_id": question.id,
        "question_text": question.question_text,
        "question_type": question_type,
        "explanation": question.explanation or None,
        "tags": list(question.tags) or None,
        "difficulty": question.difficulty or None,
        "points": DEFAULT_POINTS,
        "time_limit": DEFAULT_TIME_LIMIT_SECONDS,
    }


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _common_item_errors(item: dict[str, Any], position: int, question_type: str) -> list[str]:
    errors: list[str] = []
    if _is_blank(item.get("question_text")):
        errors.append(f"Question {position}: question_text is required")
    if item.get("question_type") != question_type:
        errors.append(f"Question {position}: question_type must be '{question_type}'")
    if item.get("source_id") is None:
        errors.append(f"Question {position}: source_id is required")
    return errors


# Multiple choice
def _mc_item(question: SourceQuestion, index: int, rng: random.Random) -> dict[str, Any]:
    item = _base_item(question, index, "multiple-choice")
    item["correct_answer"] = question.correct_answer
    item["wrong_answers"] = shuffled(question.wrong_answers, rng)
    return item


def _mc_item_errors(item: dict[str, Any], position: int) -> list[str]:
    errors = _common_item_errors(item, position, "multiple-choice")
    if _is_blank(item.get("correct_answer")):
        errors.append(f"Question {position}: correct_answer is required")
    wrong_answers = item.get("wrong_answers")
    if not isinstance(wrong_answers, list) or not wrong_answers:
        errors.append(f"Question {position}: wrong_answers must be a non-empty list")
    return errors


def _mc_question(row: TriviaMultipleChoice) -> SourceQuestion:
    return SourceQuestion(
        **_common_question_fields(row),
        correct_answer=row.correct_answer,
        wrong_answers=tuple(row.wrong_answers or ()),
    )


# True / false
def _tf_item(question: SourceQuestion, index: int, rng: random.Random) -> dict[str, Any]:
    item = _base_item(question, index, "true-false")
    # Stored as `is_true` on the source row
    item["correct_answer"] = bool(question.correct_answer)
    return item


def _tf_item_errors(item: dict[str, Any], position: int) -> list[str]:
    errors = _common_item_errors(item, position, "true-false")
    if not isinstance(item.get("correct_answer"), bool):
        errors.append(f"Question {position}: correct_answer must be a boolean")
    return errors


def _tf_question(row: TriviaTrueFalse) -> SourceQuestion:
    return SourceQuestion(**_common_question_fields(row), correct_answer=bool(row.is_true))


# Who am I
def _wai_item(question: SourceQuestion, index: int, rng: random.Random) -> dict[str, Any]:
    item = _base_item(question, index, "who-am-i")
    item["correct_answer"] = question.correct_answer
    return item


def _wai_item_errors(item: dict[str, Any], position: int) -> list[str]:
    errors = _common_item_errors(item, position, "who-am-i")
    if _is_blank(item.get("correct_answer")):
        errors.append(f"Question {position}: correct_answer is required")
    return errors


def _wai_question(row: TriviaWhoAmI) -> SourceQuestion:
    return SourceQuestion(**_common_question_fields(row), correct_answer=row.correct_answer)


def _common_question_fields(row: Any) -> dict[str, Any]:
    return {
        "id": row.id,
        "question_text": row.question_text,
        "theme": row.theme,
        "category": row.category,
        "difficulty": row.difficulty,
        "tags": tuple(tag for tag in (row.tags or ()) if isinstance(tag, str)),
        "explanation": row.explanation,
        "status": row.status,
        "global_usage_count": row.global_usage_count or 0,
    }


@dataclass(frozen=True)
class TriviaFormat:
    """Everything the shared pipeline needs to know about one format."""

    key: str
    process_id: str
    process_name: str
    description: str
    question_type: str
    slug_prefix: str
    default_title: str
    label: str
    source_model: type
    set_model: type
    to_question: Callable[[Any], SourceQuestion]
    build_item: Callable[[SourceQuestion, int, random.Random], dict[str, Any]]
    item_errors: Callable[[dict[str, Any], int], list[str]]


MULTIPLE_CHOICE = TriviaFormat(
    key="mc",
    process_id="build-trivia-set-multiple-choice",
    process_name="Build Multiple Choice Trivia Set",
    description="Creates a curated multiple choice trivia set from existing questions",
    question_type="multiple-choice",
    slug_prefix="multiple-choice-trivia",
    default_title="Multiple Choice Trivia",
    label="multiple choice",
    source_model=TriviaMultipleChoice,
    set_model=MultipleChoiceTriviaSet,
    to_question=_mc_question,
    build_item=_mc_item,
    item_errors=_mc_item_errors,
)

TRUE_FALSE = TriviaFormat(
    key="tf",
    process_id="build-trivia-set-true-false",
    process_name="Build True/False Trivia Set",
    description="Creates a curated true/false trivia set from existing questions",
    question_type="true-false",
    slug_prefix="true-false-trivia",
    default_title="True/False Trivia",
    label="true/false",
    source_model=TriviaTrueFalse,
    set_model=TrueFalseTriviaSet,
    to_question=_tf_question,
    build_item=_tf_item,
    item_errors=_tf_item_errors,
)

WHO_AM_I = TriviaFormat(
    key="wai",
    process_id="build-trivia-set-who-am-i",
    process_name="Build Who Am I Trivia Set",
    description="Creates a curated who am I trivia set from existing questions",
    question_type="who-am-i",
    slug_prefix="who-am-i-trivia",
    default_title="Who Am I Trivia",
    label="who am I",
    source_model=TriviaWhoAmI,
    set_model=WhoAmITriviaSet,
    to_question=_wai_question,
    build_item=_wai_item,
    item_errors=_wai_item_errors,
)

FORMATS: dict[str, TriviaFormat] = {
    fmt.key: fmt for fmt in (MULTIPLE_CHOICE, TRUE_FALSE, WHO_AM_I)
}


def get_format(key: str) -> TriviaFormat:
    fmt = FORMATS.get(key.strip().lower())
    if fmt is None:
        raise UnknownSetTypeError(key)
    return fmt
