"""Entry points that assemble and run a trivia set pipeline."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence

from setbuilder.repositories.trivia_repository import TriviaRepository
from setbuilder.services.process_builder.executor import ProcessBuilderExecutor
from setbuilder.services.process_builder.types import (
    Goal,
    NumericLimit,
    PipelineResult,
    ProcessBuilderMetadata,
    Rules,
    RunOptions,
)
from setbuilder.services.trivia_sets.formats import FORMATS, SourceQuestion, TriviaFormat
from setbuilder.services.trivia_sets.tasks import (
    CATEGORY_RULE,
    QUESTION_COUNT_RULE,
    TASK_IDS,
    AssembleDataTask,
    CreateRecordTask,
    GenerateMetadataTask,
    NormalQuery,
    PreSuppliedCandidates,
    QueryCandidatesTask,
    QueryInput,
    SelectBalanceTask,
    ValidateFinalizeTask,
)

logger = logging.getLogger(__name__)


def _metadata_for(fmt: TriviaFormat) -> ProcessBuilderMetadata:
    return ProcessBuilderMetadata(
        id=fmt.process_id,
        name=fmt.process_name,
        description=fmt.description,
        version="1.0.0",
        tasks=TASK_IDS,
        required_rules=(QUESTION_COUNT_RULE,),
        optional_rules=("theme", CATEGORY_RULE),
        defaults={QUESTION_COUNT_RULE: 10},
        limits={QUESTION_COUNT_RULE: NumericLimit(min=1, max=100)},
    )


# Keyed by set type ("mc", "tf", "wai")
PROCESS_BUILDERS: dict[str, ProcessBuilderMetadata] = {
    key: _metadata_for(fmt) for key, fmt in FORMATS.items()
}


def query_input_for(
    goal: Goal,
    rules: Rules,
    candidates: Sequence[SourceQuestion] | None,
) -> QueryInput:
    """Decide once whether the first task queries the store or uses given candidates."""
    if candidates is not None:
        return PreSuppliedCandidates(candidates=tuple(candidates))

    category_rule = rules.get(CATEGORY_RULE)
    category = category_rule.value if category_rule and isinstance(category_rule.value, str) else None
    return NormalQuery(theme=goal.text, category=category or None)


def build_executor(
    fmt: TriviaFormat,
    query: QueryInput,
    *,
    repository: TriviaRepository,
    rng: random.Random,
) -> ProcessBuilderExecutor:
    tasks = [
        QueryCandidatesTask(fmt, repository, query),
        SelectBalanceTask(rng),
        GenerateMetadataTask(fmt),
        AssembleDataTask(fmt, rng),
        CreateRecordTask(fmt, repository),
        ValidateFinalizeTask(fmt),
    ]
    return ProcessBuilderExecutor(tasks, process_id=fmt.process_id, process_name=fmt.process_name)


async def build_trivia_set(
    fmt: TriviaFormat,
    goal: Goal,
    rules: Rules,
    options: RunOptions | None = None,
    *,
    repository: TriviaRepository,
    candidates: Sequence[SourceQuestion] | None = None,
    rng: random.Random | None = None,
) -> PipelineResult:
    """Run the six-step pipeline for one set.

    Passing `candidates` skips the store query and uses them verbatim, in
    the given order.
    """
    query = query_input_for(goal, rules, candidates)
    executor = build_executor(fmt, query, repository=repository, rng=rng or random.Random())
    result = await executor.execute(goal, rules, options)

    logger.info(
        "Trivia set build finished",
        extra={
            "set_type": fmt.key,
            "status": result.status,
            "goal": goal.text,
            "pre_selected": candidates is not None,
            "warnings": len(result.warnings),
            "execution_time_ms": result.execution_time_ms,
        },
    )
    return result
