"""Scheduled batch building of trivia sets.

Each run picks least-used questions with the usage-balanced selector, hands
them to the regular trivia set pipeline, stores the finished set in the
collection table and only then bumps the questions' usage counters.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic_core import to_jsonable_python

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import ExternalCallTimeoutError, RepositoryError
from setbuilder.repositories.set_builder_repository import BuilderConfig, SetBuilderRepository
from setbuilder.repositories.trivia_repository import TriviaRepository
from setbuilder.services.batch import BatchSummary, batch_message, cooldown
from setbuilder.services.process_builder.errors import format_error_for_display
from setbuilder.services.process_builder.types import Goal, Rule, RunOptions, make_rules
from setbuilder.services.selection.usage_balanced import UsageBalancedSelector
from setbuilder.services.set_builder.config import SetBuilderConfigService
from setbuilder.services.set_builder.usage import UsageTracker
from setbuilder.services.task_manager import TaskManager, mirror_task_state
from setbuilder.services.trivia_sets.builder import build_trivia_set
from setbuilder.services.trivia_sets.formats import TriviaFormat, get_format
from setbuilder.services.trivia_sets.tasks import QUESTION_COUNT_RULE, FinalizedSet

logger = logging.getLogger(__name__)

SetType = Literal["mc", "tf", "wai", "mix"]
MIX_CYCLE = ("mc", "tf", "wai")


def set_type_for_index(set_type: str, index: int) -> str:
    """`mix` cycles through every format; anything else is used as-is."""
    if set_type == "mix":
        return MIX_CYCLE[index % len(MIX_CYCLE)]
    return set_type


@dataclass(frozen=True)
class RunParameters:
    questions_per_set: int
    themes: tuple[str, ...] | None
    balance_themes: bool

    @classmethod
    def resolve(cls, config: BuilderConfig, overrides: Mapping[str, Any] | None) -> RunParameters:
        overrides = overrides or {}
        questions = overrides.get("questions_per_set")
        balance = overrides.get("balance_themes")
        # An explicit None for themes means "all themes"
        themes = overrides["themes"] if "themes" in overrides else config.themes
        return cls(
            questions_per_set=int(questions) if questions is not None else config.questions_per_set,
            themes=tuple(themes) if themes else None,
            balance_themes=bool(balance) if balance is not None else config.balance_themes,
        )


@dataclass
class SetBuildResult:
    index: int
    set_type: str
    success: bool
    message: str
    slug: str | None = None
    collection_id: int | None = None
    question_count: int | None = None
    warnings: list[str] = field(default_factory=list)


class AutomatedSetBuilder:
    def __init__(
        self,
        trivia_repository: TriviaRepository,
        set_builder_repository: SetBuilderRepository,
        *,
        selector: UsageBalancedSelector | None = None,
        usage_tracker: UsageTracker | None = None,
        config_service: SetBuilderConfigService | None = None,
        task_manager: TaskManager | None = None,
        cooldown_seconds: float | None = None,
        run_timeout_seconds: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.trivia_repository = trivia_repository
        self.set_builder_repository = set_builder_repository
        self.selector = selector or UsageBalancedSelector(trivia_repository)
        self.usage_tracker = usage_tracker or UsageTracker(trivia_repository)
        self.config_service = config_service or SetBuilderConfigService(set_builder_repository)
        self.task_manager = task_manager
        self.cooldown_seconds = (
            settings.batch_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self.run_timeout_seconds = (
            settings.pipeline_run_timeout_seconds if run_timeout_seconds is None else run_timeout_seconds
        )
        self.rng = rng or random.Random()

    async def build_automated_sets(
        self,
        publish_date: date | None = None,
        number_of_sets: int | None = None,
        set_type: SetType = "mc",
        overrides: Mapping[str, Any] | None = None,
        *,
        stop_event: asyncio.Event | None = None,
        task_id: str | None = None,
    ) -> BatchSummary:
        """Build up to `number_of_sets` sets sequentially with a cooldown between runs."""
        config = await self.config_service.get_config()
        if config is None:
            summary = BatchSummary(
                success=False,
                processed=0,
                failed=0,
                total_requested=number_of_sets or 0,
                errors=["Failed to load configuration"],
                message="Failed to load configuration",
            )
            await self.config_service.update_last_run("failed", summary.message)
            await mirror_task_state(
                self.task_manager, task_id, status="failed", error_message=summary.message, summary=summary.to_dict()
            )
            return summary

        target_date = publish_date or datetime.now(timezone.utc).date()
        requested = config.sets_per_day if number_of_sets is None else number_of_sets
        params = RunParameters.resolve(config, overrides)
        log_info = {"publish_date": target_date.isoformat(), "set_type": set_type, "requested": requested}
        logger.info("Automated set build started", extra={**log_info, "themes": params.themes})
        await mirror_task_state(
            self.task_manager,
            task_id,
            status="running",
            kind="set_builder",
            stage="Building sets",
            processed=0,
            failed=0,
            total_requested=requested,
        )

        try:
            summary = await self._build_sets(
                target_date,
                requested,
                set_type,
                params,
                stop_event=stop_event,
                task_id=task_id,
            )
        except Exception as exc:
            logger.exception("Automated set build failed unexpectedly", extra=log_info)
            summary = BatchSummary(
                success=False,
                processed=0,
                failed=0,
                total_requested=requested,
                errors=[f"Unexpected error: {exc}"],
                message=str(exc),
            )
            await self.config_service.update_last_run("failed", str(exc))
            await mirror_task_state(
                self.task_manager, task_id, status="failed", error_message=str(exc), summary=summary.to_dict()
            )
            return summary

        if summary.processed > 0 and summary.failed == 0:
            run_status = "success"
        elif summary.processed > 0:
            run_status = "partial"
        else:
            run_status = "failed"
        await self.config_service.update_last_run(run_status, summary.message)

        logger.info(
            "Automated set build finished",
            extra={
                **log_info,
                "processed": summary.processed,
                "failed": summary.failed,
                "run_status": run_status,
                "stopped_early": summary.stopped_early,
            },
        )
        await mirror_task_state(
            self.task_manager,
            task_id,
            status="completed" if run_status != "failed" else "failed",
            stage=summary.message,
            processed=summary.processed,
            failed=summary.failed,
            summary=summary.to_dict(),
            error_message=None if run_status != "failed" else summary.message,
        )
        return summary

    async def _build_sets(
        self,
        publish_date: date,
        requested: int,
        set_type: str,
        params: RunParameters,
        *,
        stop_event: asyncio.Event | None,
        task_id: str | None,
    ) -> BatchSummary:
        summary = BatchSummary(success=False, processed=0, failed=0, total_requested=requested)
        consumed: dict[str, set[int]] = {}

        for index in range(requested):
            if stop_event is not None and stop_event.is_set():
                summary.cancelled = True
                break

            fmt = get_format(set_type_for_index(set_type, index))
            label = f"Set {index + 1} ({fmt.key.upper()})"
            exclude_ids = consumed.setdefault(fmt.key, set())

            try:
                selected = await self.selector.select(
                    fmt,
                    categories=params.themes,
                    budget=params.questions_per_set,
                    balance=params.balance_themes,
                    exclude_ids=sorted(exclude_ids),
                )
            except (RepositoryError, ExternalCallTimeoutError) as exc:
                summary.failed += 1
                summary.errors.append(f"{label}: {exc}")
                summary.results.append(
                    SetBuildResult(index=index, set_type=fmt.key, success=False, message=str(exc))
                )
                selected = None

            if selected is not None:
                if not selected:
                    logger.info(
                        "No unused questions left, stopping batch early",
                        extra={"set_type": fmt.key, "index": index},
                    )
                    summary.stopped_early = True
                    break

                exclude_ids.update(question.id for question in selected)
                if len(selected) < params.questions_per_set:
                    summary.warnings.append(
                        f"{label}: only {len(selected)} questions available, "
                        f"{params.questions_per_set} requested"
                    )

                item = await self._build_one(index, fmt, selected, params, publish_date)
                summary.results.append(item)
                summary.warnings.extend(f"{label}: {warning}" for warning in item.warnings)
                if item.success:
                    summary.processed += 1
                else:
                    summary.failed += 1
                    summary.errors.append(f"{label}: {item.message}")

            await mirror_task_state(
                self.task_manager,
                task_id,
                stage=f"Built {summary.processed} of {requested} set(s)",
                processed=summary.processed,
                failed=summary.failed,
            )

            if index < requested - 1 and await cooldown(self.cooldown_seconds, stop_event):
                summary.cancelled = True
                break

        summary.success = summary.processed > 0 and summary.failed == 0
        summary.message = batch_message(
            processed=summary.processed,
            failed=summary.failed,
            requested=requested,
            stopped_early=summary.stopped_early,
            cancelled=summary.cancelled,
            noun="set",
        )
        return summary

    async def _build_one(
        self,
        index: int,
        fmt: TriviaFormat,
        selected: list,
        params: RunParameters,
        publish_date: date,
    ) -> SetBuildResult:
        goal = Goal(text=params.themes[0] if params.themes else "")
        rules = make_rules(Rule(key=QUESTION_COUNT_RULE, value=params.questions_per_set, type="number"))

        try:
            result = await with_timeout(
                build_trivia_set(
                    fmt,
                    goal,
                    rules,
                    RunOptions(allow_partial_results=True),
                    repository=self.trivia_repository,
                    candidates=selected,
                    rng=self.rng,
                ),
                seconds=self.run_timeout_seconds,
                operation=f"{fmt.key}.build_trivia_set",
            )
        except ExternalCallTimeoutError as exc:
            return SetBuildResult(index=index, set_type=fmt.key, success=False, message=str(exc))

        warnings = list(result.warnings)
        finalized = result.final_result if isinstance(result.final_result, FinalizedSet) else None
        if result.status != "success" or finalized is None:
            message = "; ".join(format_error_for_display(error) for error in result.errors) or "Build failed"
            return SetBuildResult(index=index, set_type=fmt.key, success=False, message=message, warnings=warnings)

        record = to_jsonable_python(finalized.record)
        try:
            collection_id = await with_timeout(
                self.set_builder_repository.insert_collection_entry(
                    publish_date=publish_date,
                    sets=[{"type": fmt.key, "set": record}],
                ),
                seconds=settings.store_call_timeout_seconds,
                operation="set_builder.insert_collection_entry",
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            return SetBuildResult(
                index=index,
                set_type=fmt.key,
                success=False,
                message=f"Failed to store set in collection_trivia_sets: {exc}",
                slug=record.get("slug"),
                warnings=warnings,
            )

        usage = await self.usage_tracker.track_set(fmt, record)
        if not usage.success:
            warnings.append(f"Usage tracking incomplete: {usage.error}")

        return SetBuildResult(
            index=index,
            set_type=fmt.key,
            success=True,
            message=f"Created set '{record.get('title')}'",
            slug=record.get("slug"),
            collection_id=collection_id,
            question_count=record.get("question_count"),
            warnings=warnings,
        )
