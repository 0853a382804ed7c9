"""The six tasks shared by every trivia set pipeline.

Each task reads its predecessor's payload out of the context mailbox by
task id and writes its own typed payload back under its task id.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import (
    ExternalCallTimeoutError,
    RepositoryError,
    SlugConflictError,
)
from setbuilder.repositories.trivia_repository import TriviaRepository
from setbuilder.services.process_builder import errors
from setbuilder.services.process_builder.errors import create_error
from setbuilder.services.process_builder.task import ProcessTask
from setbuilder.services.process_builder.types import (
    PipelineContext,
    TaskResult,
    ValidationResult,
)
from setbuilder.services.process_builder.validation import validate_rule_types, value_type
from setbuilder.services.trivia_sets import naming
from setbuilder.services.trivia_sets.formats import SourceQuestion, TriviaFormat, shuffled

logger = logging.getLogger(__name__)

QUERY_QUESTIONS = "query-questions"
SELECT_BALANCE = "select-balance"
GENERATE_METADATA = "generate-metadata"
ASSEMBLE_DATA = "assemble-data"
CREATE_RECORD = "create-record"
VALIDATE_FINALIZE = "validate-finalize"

TASK_IDS = (
    QUERY_QUESTIONS,
    SELECT_BALANCE,
    GENERATE_METADATA,
    ASSEMBLE_DATA,
    CREATE_RECORD,
    VALIDATE_FINALIZE,
)

QUESTION_COUNT_RULE = "questionCount"
CATEGORY_RULE = "category"


# Query input
@dataclass(frozen=True)
class NormalQuery:
    theme: str
    category: str | None = None


@dataclass(frozen=True)
class PreSuppliedCandidates:
    """Candidates chosen upstream, already in usage order."""

    candidates: tuple[SourceQuestion, ...]


QueryInput = NormalQuery | PreSuppliedCandidates


# Mailbox payloads
@dataclass(frozen=True)
class CandidatePool:
    candidates: tuple[SourceQuestion, ...]
    requested_count: int
    presorted: bool = False


@dataclass(frozen=True)
class Selection:
    selected: tuple[SourceQuestion, ...]
    requested_count: int


@dataclass(frozen=True)
class SetMetadata:
    title: str
    slug: str
    description: str
    category: str | None
    theme: str | None
    tags: tuple[str, ...]
    estimated_duration: int


@dataclass(frozen=True)
class AssembledItems:
    items: tuple[dict[str, Any], ...]


@dataclass(frozen=True)
class PersistedSet:
    record: dict[str, Any]
    dry_run: bool = False


@dataclass(frozen=True)
class FinalizedSet:
    record: dict[str, Any]


def requested_question_count(context: PipelineContext) -> int | None:
    """Numeric questionCount rule value, or None when missing or non-numeric."""
    value = context.rule_value(QUESTION_COUNT_RULE)
    if value_type(value) != "number":
        return None
    return int(value)


def _missing_predecessor(task_id: str, predecessor: str) -> TaskResult:
    return TaskResult.fail(
        create_error(
            errors.INVALID_CONTEXT,
            f"Previous task ({predecessor}) did not succeed",
            task_id=task_id,
        )
    )


def _store_failure(task_id: str, exc: Exception, action: str) -> TaskResult:
    if isinstance(exc, ExternalCallTimeoutError):
        return TaskResult.fail(
            create_error(errors.TIMEOUT, f"Timed out while {action}", task_id=task_id, details=exc.details)
        )
    return TaskResult.fail(
        create_error(
            errors.DATABASE_ERROR,
            f"Failed while {action}: {exc}",
            task_id=task_id,
            details=getattr(exc, "details", None),
        )
    )


class QueryCandidatesTask(ProcessTask):
    task_id = QUERY_QUESTIONS
    name = "Query Source Questions"
    description = "Fetches published questions matching the theme and criteria"

    def __init__(
        self,
        fmt: TriviaFormat,
        repository: TriviaRepository,
        query: QueryInput,
        *,
        call_timeout: float | None = None,
    ) -> None:
        self.fmt = fmt
        self.repository = repository
        self.query = query
        self.call_timeout = settings.store_call_timeout_seconds if call_timeout is None else call_timeout

    async def validate(self, context: PipelineContext) -> ValidationResult:
        return validate_rule_types(context.rules)

    async def execute(self, context: PipelineContext) -> TaskResult:
        if isinstance(self.query, PreSuppliedCandidates):
            candidates = tuple(self.query.candidates)
            requested = requested_question_count(context)
            if requested is None:
                requested = len(candidates)
            return TaskResult.ok(
                CandidatePool(candidates=candidates, requested_count=requested, presorted=True),
                metadata={
                    "candidate_count": len(candidates),
                    "requested_count": requested,
                    "using_pre_selected": True,
                },
            )

        theme = self.query.theme.strip()
        if not theme:
            return TaskResult.fail(
                create_error(errors.INVALID_INPUT, "Theme is required in goal text", task_id=self.task_id)
            )

        requested = requested_question_count(context)
        if requested is None:
            return TaskResult.fail(
                create_error(
                    errors.INVALID_INPUT,
                    f"{QUESTION_COUNT_RULE} rule is required and must be a number",
                    task_id=self.task_id,
                )
            )
        if requested < 1:
            return TaskResult.fail(
                create_error(
                    errors.INVALID_INPUT,
                    f"{QUESTION_COUNT_RULE} must be at least 1",
                    task_id=self.task_id,
                )
            )

        try:
            found = await with_timeout(
                self.repository.list_published(self.fmt, theme=theme, category=self.query.category),
                seconds=self.call_timeout,
                operation=f"{self.fmt.key}.list_published",
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            return _store_failure(self.task_id, exc, "querying questions")

        candidates = tuple(found)
        metadata = {"candidate_count": len(candidates), "requested_count": requested}
        if not candidates:
            return TaskResult.fail(
                create_error(
                    errors.INSUFFICIENT_DATA,
                    f"No questions found matching theme: {theme}",
                    task_id=self.task_id,
                ),
                warnings=[
                    f"No published questions found for theme: {theme}. "
                    "Try a different theme or publish more questions."
                ],
                metadata=metadata,
            )

        warnings: list[str] = []
        if len(candidates) < requested:
            warnings.append(
                f"Only {len(candidates)} questions available, but {requested} requested. "
                "Will create set with available questions."
            )
        return TaskResult.ok(
            CandidatePool(candidates=candidates, requested_count=requested),
            warnings=warnings,
            metadata=metadata,
        )


class SelectBalanceTask(ProcessTask):
    task_id = SELECT_BALANCE
    name = "Select & Balance Questions"
    description = "Selects the requested number of questions from the candidates"

    def __init__(self, rng: random.Random) -> None:
        self.rng = rng

    async def execute(self, context: PipelineContext) -> TaskResult:
        pool = context.output(QUERY_QUESTIONS, CandidatePool)
        if pool is None:
            return _missing_predecessor(self.task_id, QUERY_QUESTIONS)
        if not pool.candidates:
            return TaskResult.fail(
                create_error(errors.INSUFFICIENT_DATA, "No candidate questions available", task_id=self.task_id)
            )

        take = max(0, min(pool.requested_count, len(pool.candidates)))
        # Pre-supplied pools are already in priority order
        ordered = pool.candidates if pool.presorted else shuffled(pool.candidates, self.rng)
        selected = tuple(ordered[:take])

        warnings: list[str] = []
        if len(selected) < pool.requested_count:
            warnings.append(f"Only {len(selected)} questions selected (requested {pool.requested_count})")
        return TaskResult.ok(
            Selection(selected=selected, requested_count=pool.requested_count),
            warnings=warnings,
            metadata={"selected_count": len(selected)},
        )


class GenerateMetadataTask(ProcessTask):
    task_id = GENERATE_METADATA
    name = "Generate Metadata"
    description = "Generates title, slug, description and tags for the set"

    def __init__(self, fmt: TriviaFormat) -> None:
        self.fmt = fmt

    async def execute(self, context: PipelineContext) -> TaskResult:
        selection = context.output(SELECT_BALANCE, Selection)
        if selection is None:
            return _missing_predecessor(self.task_id, SELECT_BALANCE)
        if not selection.selected:
            return TaskResult.fail(
                create_error(errors.INSUFFICIENT_DATA, "No selected questions available", task_id=self.task_id)
            )

        theme = context.goal.text.strip()
        count = len(selection.selected)
        metadata = SetMetadata(
            title=naming.generate_title(theme, self.fmt),
            slug=naming.generate_slug(theme, self.fmt),
            description=naming.generate_description(theme, count, self.fmt),
            category=naming.determine_category(selection.selected),
            theme=theme or None,
            tags=tuple(naming.extract_tags(selection.selected, theme)),
            estimated_duration=naming.estimate_duration_minutes(count),
        )
        return TaskResult.ok(metadata, metadata={"slug": metadata.slug})


class AssembleDataTask(ProcessTask):
    task_id = ASSEMBLE_DATA
    name = "Assemble Question Data"
    description = "Transforms selected questions into the set's item format"

    def __init__(self, fmt: TriviaFormat, rng: random.Random) -> None:
        self.fmt = fmt
        self.rng = rng

    async def execute(self, context: PipelineContext) -> TaskResult:
        selection = context.output(SELECT_BALANCE, Selection)
        if selection is None:
            return _missing_predecessor(self.task_id, SELECT_BALANCE)
        if not selection.selected:
            return TaskResult.fail(
                create_error(errors.INSUFFICIENT_DATA, "No selected questions available", task_id=self.task_id)
            )
        if not all(isinstance(question, SourceQuestion) for question in selection.selected):
            return TaskResult.fail(
                create_error(errors.VALIDATION_FAILED, "Selection contains malformed questions", task_id=self.task_id)
            )

        items = [
            self.fmt.build_item(question, index, self.rng)
            for index, question in enumerate(selection.selected)
        ]
        items = shuffled(items, self.rng)
        return TaskResult.ok(AssembledItems(items=tuple(items)), metadata={"question_count": len(items)})


class CreateRecordTask(ProcessTask):
    task_id = CREATE_RECORD
    name = "Create Trivia Set Record"
    description = "Writes the draft set with a unique slug"

    def __init__(
        self,
        fmt: TriviaFormat,
        repository: TriviaRepository,
        *,
        slug_retry_attempts: int | None = None,
        call_timeout: float | None = None,
    ) -> None:
        self.fmt = fmt
        self.repository = repository
        self.slug_retry_attempts = (
            settings.slug_retry_attempts if slug_retry_attempts is None else slug_retry_attempts
        )
        self.call_timeout = settings.store_call_timeout_seconds if call_timeout is None else call_timeout

    def _build_record(self, metadata: SetMetadata, assembled: AssembledItems) -> dict[str, Any]:
        return {
            "title": metadata.title,
            "slug": metadata.slug,
            "description": metadata.description or None,
            "category": metadata.category,
            "theme": metadata.theme,
            "difficulty": None,
            "tags": list(metadata.tags) or None,
            "question_data": [dict(item) for item in assembled.items],
            "question_count": len(assembled.items),
            "estimated_duration": metadata.estimated_duration or None,
            "status": "draft",
            "visibility": "Private",
            "published_at": None,
            "scheduled_for": None,
        }

    async def _call(self, awaitable: Any, operation: str) -> Any:
        return await with_timeout(
            awaitable,
            seconds=self.call_timeout,
            operation=f"{self.fmt.key}.{operation}",
        )

    async def execute(self, context: PipelineContext) -> TaskResult:
        metadata = context.output(GENERATE_METADATA, SetMetadata)
        if metadata is None:
            return _missing_predecessor(self.task_id, GENERATE_METADATA)
        assembled = context.output(ASSEMBLE_DATA, AssembledItems)
        if assembled is None:
            return _missing_predecessor(self.task_id, ASSEMBLE_DATA)

        record = self._build_record(metadata, assembled)
        if context.options.dry_run:
            return TaskResult.ok(
                PersistedSet(record={"id": None, **record}, dry_run=True),
                warnings=["Dry run: trivia set was not saved"],
                metadata={"slug": record["slug"], "dry_run": True},
            )

        warnings: list[str] = []
        retries_left = self.slug_retry_attempts
        slug = record["slug"]
        while True:
            try:
                if await self._call(self.repository.slug_exists(self.fmt, slug), "slug_exists"):
                    raise SlugConflictError(slug)
                stored = await self._call(
                    self.repository.insert_set(self.fmt, {**record, "slug": slug}),
                    "insert_set",
                )
                break
            except SlugConflictError:
                if retries_left <= 0:
                    return TaskResult.fail(
                        create_error(
                            errors.DATABASE_ERROR,
                            f"Slug already exists: {slug}",
                            task_id=self.task_id,
                            details={"slug": slug},
                        ),
                        warnings=warnings,
                    )
                retries_left -= 1
                retry_slug = naming.with_timestamp_suffix(record["slug"])
                logger.warning(
                    "Slug collision, retrying with timestamp suffix",
                    extra={"set_type": self.fmt.key, "slug": slug, "retry_slug": retry_slug},
                )
                warnings.append(f"Slug '{slug}' already exists; saved as '{retry_slug}'")
                slug = retry_slug
            except (RepositoryError, ExternalCallTimeoutError) as exc:
                failure = _store_failure(self.task_id, exc, "creating trivia set")
                failure.warnings.extend(warnings)
                return failure

        return TaskResult.ok(
            PersistedSet(record={**record, **stored}),
            warnings=warnings,
            metadata={"slug": slug, "set_id": stored.get("id")},
        )


class ValidateFinalizeTask(ProcessTask):
    task_id = VALIDATE_FINALIZE
    name = "Validate & Finalize"
    description = "Re-checks the saved set and returns it"

    def __init__(self, fmt: TriviaFormat) -> None:
        self.fmt = fmt

    def _record_errors(self, record: dict[str, Any]) -> list[str]:
        problems: list[str] = []
        if not str(record.get("title") or "").strip():
            problems.append("Title is required")
        if not str(record.get("slug") or "").strip():
            problems.append("Slug is required")

        items = record.get("question_data")
        if not isinstance(items, list):
            problems.append("question_data must be a list")
            return problems
        if not items:
            problems.append("question_data cannot be empty")

        for position, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                problems.append(f"Question {position}: item must be an object")
                continue
            problems.extend(self.fmt.item_errors(item, position))

        source_ids = [item.get("source_id") for item in items if isinstance(item, dict)]
        if len(source_ids) != len(set(source_ids)):
            problems.append("Duplicate questions detected in set")
        return problems

    async def execute(self, context: PipelineContext) -> TaskResult:
        persisted = context.output(CREATE_RECORD, PersistedSet)
        if persisted is None:
            return _missing_predecessor(self.task_id, CREATE_RECORD)

        record = persisted.record
        expected = requested_question_count(context)
        if expected is None:
            selection = context.output(SELECT_BALANCE, Selection)
            expected = selection.requested_count if selection else 0

        warnings: list[str] = []
        actual = record.get("question_count")
        if actual != expected:
            warnings.append(f"Question count mismatch: expected {expected}, got {actual}")

        problems = self._record_errors(record)
        if problems:
            return TaskResult(
                success=False,
                errors=[
                    create_error(errors.VALIDATION_FAILED, problem, task_id=self.task_id)
                    for problem in problems
                ],
                warnings=warnings,
            )

        return TaskResult.ok(
            FinalizedSet(record=dict(record)),
            warnings=warnings,
            metadata={"validated": True, "question_count": actual},
        )
