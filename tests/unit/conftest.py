"""Shared in-memory fakes for the store, builder config, sources and generator."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from typing import Any

import pytest

from setbuilder.core.exceptions import (
    ConfigNotFoundError,
    RepositoryError,
    SlugConflictError,
    UnsupportedOperationError,
)
from setbuilder.integrations.generation import GenerationOutcome
from setbuilder.repositories.set_builder_repository import BuilderConfig
from setbuilder.repositories.source_repository import SourceAvailability, SourceContent
from setbuilder.services.trivia_sets.formats import SourceQuestion, TriviaFormat


def build_question(
    question_id: int,
    *,
    theme: str | None = "Legends",
    category: str | None = "Football",
    usage: int = 0,
    correct_answer: str | bool = "Answer",
    wrong_answers: Sequence[str] = ("Wrong 1", "Wrong 2", "Wrong 3"),
    tags: Sequence[str] = (),
    status: str = "published",
) -> SourceQuestion:
    return SourceQuestion(
        id=question_id,
        question_text=f"Question {question_id}?",
        correct_answer=correct_answer,
        theme=theme,
        category=category,
        tags=tuple(tags),
        status=status,
        global_usage_count=usage,
        wrong_answers=tuple(wrong_answers),
    )


class FakeTriviaRepository:
    def __init__(self) -> None:
        self.questions: dict[str, list[SourceQuestion]] = {}
        self.sets: dict[str, list[dict[str, Any]]] = {}
        self.atomic_increment_supported = True
        self.failing_operations: set[str] = set()
        self.calls: list[str] = []
        self._next_set_id = 1

    def add_questions(self, fmt: TriviaFormat, questions: Sequence[SourceQuestion]) -> None:
        self.questions.setdefault(fmt.key, []).extend(questions)

    def usage_of(self, fmt: TriviaFormat, question_id: int) -> int:
        for question in self.questions.get(fmt.key, []):
            if question.id == question_id:
                return question.global_usage_count
        raise KeyError(question_id)

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing_operations:
            raise RepositoryError(f"{operation} failed")

    def _published(self, fmt: TriviaFormat) -> list[SourceQuestion]:
        return [q for q in self.questions.get(fmt.key, []) if q.status == "published"]

    async def list_published(
        self,
        fmt: TriviaFormat,
        *,
        theme: str,
        category: str | None = None,
    ) -> list[SourceQuestion]:
        self._check("list_published")
        return [
            q
            for q in self._published(fmt)
            if theme.lower() in (q.theme or "").lower() and (category is None or q.category == category)
        ]

    async def list_by_usage(
        self,
        fmt: TriviaFormat,
        *,
        limit: int,
        themes: Sequence[str] | None = None,
        exclude_ids: Sequence[int] = (),
    ) -> list[SourceQuestion]:
        self._check("list_by_usage")
        excluded = set(exclude_ids)
        pool = [
            q
            for q in self._published(fmt)
            if q.id not in excluded
            and (not themes or any(theme.lower() in (q.theme or "").lower() for theme in themes))
        ]
        pool.sort(key=lambda q: (q.global_usage_count, q.id))
        return pool[:limit]

    async def slug_exists(self, fmt: TriviaFormat, slug: str) -> bool:
        self._check("slug_exists")
        return any(record["slug"] == slug for record in self.sets.get(fmt.key, []))

    async def insert_set(self, fmt: TriviaFormat, record: Mapping[str, Any]) -> dict[str, Any]:
        self._check("insert_set")
        if any(existing["slug"] == record["slug"] for existing in self.sets.get(fmt.key, [])):
            raise SlugConflictError(record["slug"])
        stored = {**record, "id": self._next_set_id}
        self._next_set_id += 1
        self.sets.setdefault(fmt.key, []).append(stored)
        return dict(stored)

    def _replace_usage(self, fmt: TriviaFormat, question_id: int, count: int) -> None:
        questions = self.questions.get(fmt.key, [])
        for index, question in enumerate(questions):
            if question.id == question_id:
                questions[index] = dataclasses.replace(question, global_usage_count=count)

    async def increment_usage(self, fmt: TriviaFormat, question_ids: Sequence[int]) -> None:
        self._check("increment_usage")
        if not self.atomic_increment_supported:
            raise UnsupportedOperationError("increment_usage")
        for question_id in question_ids:
            self._replace_usage(fmt, question_id, self.usage_of(fmt, question_id) + 1)

    async def get_usage_count(self, fmt: TriviaFormat, question_id: int) -> int | None:
        self._check("get_usage_count")
        try:
            return self.usage_of(fmt, question_id)
        except KeyError:
            return None

    async def set_usage_count(self, fmt: TriviaFormat, question_id: int, count: int) -> None:
        self._check("set_usage_count")
        self._replace_usage(fmt, question_id, count)


class FakeSetBuilderRepository:
    def __init__(self, config: BuilderConfig | None = None) -> None:
        self.config = config
        self.updates: list[dict[str, Any]] = []
        self.collection: list[dict[str, Any]] = []
        self.fail_get = False

    async def get_config(self) -> BuilderConfig | None:
        if self.fail_get:
            raise RepositoryError("get_config failed")
        return self.config

    async def update_config(self, updates: Mapping[str, Any]) -> BuilderConfig:
        if self.config is None:
            raise ConfigNotFoundError()
        values = dict(updates)
        if values.get("themes") is not None:
            values["themes"] = tuple(values["themes"])
        self.updates.append(dict(updates))
        self.config = dataclasses.replace(self.config, **values)
        return self.config

    async def insert_collection_entry(
        self,
        *,
        publish_date: date,
        sets: Sequence[Mapping[str, Any]],
        run_status: str = "completed",
        run_message: str | None = None,
    ) -> int:
        entry_id = len(self.collection) + 1
        self.collection.append(
            {
                "id": entry_id,
                "publish_date": publish_date,
                "sets": [dict(entry) for entry in sets],
                "run_status": run_status,
                "run_message": run_message,
            }
        )
        return entry_id


class FakeSourceRepository:
    def __init__(self, sources: Sequence[SourceContent] = ()) -> None:
        self.sources = list(sources)
        self.used_for: dict[int, list[str]] = {source.id: [] for source in self.sources}
        self.fail_mark_used = False

    async def find_next_unprocessed(
        self,
        usage_key: str,
        *,
        exclude_ids: Sequence[int] = (),
    ) -> SourceContent | None:
        for source in sorted(self.sources, key=lambda s: s.id):
            if source.id in exclude_ids or usage_key in self.used_for[source.id]:
                continue
            return source
        return None

    async def mark_used(self, source_id: int, usage_key: str) -> None:
        if self.fail_mark_used:
            raise RepositoryError("mark_used failed")
        self.used_for[source_id].append(usage_key)

    async def count_unprocessed(self, usage_key: str) -> SourceAvailability:
        available = sum(1 for source in self.sources if usage_key not in self.used_for[source.id])
        return SourceAvailability(available=available, total=len(self.sources))


class FakeGenerator:
    def __init__(self, outcomes: Mapping[int, GenerationOutcome | Exception] | None = None) -> None:
        self.outcomes = dict(outcomes or {})
        self.calls: list[tuple[str, int]] = []

    async def generate(self, track_key: str, source_id: int, source_text: str) -> GenerationOutcome:
        self.calls.append((track_key, source_id))
        outcome = self.outcomes.get(source_id, GenerationOutcome(success=True, message="ok", item_count=3))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeTaskManager:
    def __init__(self) -> None:
        self.states: dict[str, dict[str, Any]] = {}
        self.calls: list[dict[str, Any]] = []

    async def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        return self.states.get(task_id)

    async def set_task_state(self, task_id: str, **fields: Any) -> dict[str, Any]:
        self.calls.append({"task_id": task_id, **fields})
        state = self.states.setdefault(task_id, {"task_id": task_id})
        state.update({key: value for key, value in fields.items() if value is not None})
        return state


def default_config(**overrides: Any) -> BuilderConfig:
    values: dict[str, Any] = {
        "enabled": True,
        "sets_per_day": 2,
        "questions_per_set": 3,
        "themes": None,
        "balance_themes": True,
        "cron_schedule": "0 2 * * *",
    }
    values.update(overrides)
    return BuilderConfig(**values)


@pytest.fixture
def make_question() -> Callable[..., SourceQuestion]:
    return build_question


@pytest.fixture
def make_config() -> Callable[..., BuilderConfig]:
    return default_config


@pytest.fixture
def trivia_repository() -> FakeTriviaRepository:
    return FakeTriviaRepository()


@pytest.fixture
def set_builder_repository() -> FakeSetBuilderRepository:
    return FakeSetBuilderRepository(default_config())


@pytest.fixture
def source_repository() -> FakeSourceRepository:
    return FakeSourceRepository(
        [SourceContent(id=source_id, content_text=f"Article {source_id}") for source_id in (1, 2, 3)]
    )


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def task_manager() -> FakeTaskManager:
    return FakeTaskManager()
