"""Sequential batch generation over unprocessed source content."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import (
    ExternalAPIError,
    ExternalCallTimeoutError,
    RepositoryError,
    UnknownTrackError,
)
from setbuilder.integrations.generation import TRACK_USAGE_KEYS, GenerationOutcome
from setbuilder.repositories.source_repository import SourceRepository
from setbuilder.services.batch import BatchSummary, batch_message, cooldown
from setbuilder.services.process_builder import errors
from setbuilder.services.task_manager import TaskManager, mirror_task_state

logger = logging.getLogger(__name__)


class Generator(Protocol):
    async def generate(self, track_key: str, source_id: int, source_text: str) -> GenerationOutcome: ...


@dataclass
class SourceResult:
    source_id: int | None
    success: bool
    message: str
    item_count: int | None = None
    error_code: str | None = None


class SourceBatchProcessor:
    """Runs the generation collaborator over the next unprocessed sources of a track."""

    def __init__(
        self,
        source_repository: SourceRepository,
        generator: Generator,
        *,
        task_manager: TaskManager | None = None,
        cooldown_seconds: float | None = None,
        generation_timeout: float | None = None,
        store_timeout: float | None = None,
    ) -> None:
        self.source_repository = source_repository
        self.generator = generator
        self.task_manager = task_manager
        self.cooldown_seconds = (
            settings.batch_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self.generation_timeout = (
            settings.generation_timeout_seconds if generation_timeout is None else generation_timeout
        )
        self.store_timeout = settings.store_call_timeout_seconds if store_timeout is None else store_timeout

    async def run(
        self,
        track_key: str,
        count: int,
        *,
        stop_event: asyncio.Event | None = None,
        task_id: str | None = None,
    ) -> BatchSummary:
        usage_key = TRACK_USAGE_KEYS.get(track_key)
        if usage_key is None:
            raise UnknownTrackError(track_key)

        summary = BatchSummary(success=False, processed=0, failed=0, total_requested=count)
        attempted: set[int] = set()
        log_info = {"track_key": track_key, "requested": count}
        logger.info("Source batch started", extra=log_info)
        await mirror_task_state(
            self.task_manager,
            task_id,
            status="running",
            kind="source_batch",
            stage="Generating",
            processed=0,
            failed=0,
            total_requested=count,
        )

        for index in range(count):
            if stop_event is not None and stop_event.is_set():
                summary.cancelled = True
                break

            try:
                source = await with_timeout(
                    self.source_repository.find_next_unprocessed(usage_key, exclude_ids=sorted(attempted)),
                    seconds=self.store_timeout,
                    operation="sources.find_next_unprocessed",
                )
            except (RepositoryError, ExternalCallTimeoutError) as exc:
                summary.failed += 1
                summary.errors.append(str(exc))
                summary.results.append(
                    SourceResult(source_id=None, success=False, message=str(exc), error_code=errors.DATABASE_ERROR)
                )
                source = None
            else:
                if source is None:
                    summary.stopped_early = True
                    break

            if source is not None:
                attempted.add(source.id)
                result = await self._process_source(track_key, usage_key, source.id, source.content_text)
                summary.results.append(result)
                if result.success:
                    summary.processed += 1
                else:
                    summary.failed += 1
                    summary.errors.append(f"Source {source.id}: {result.message}")

            await mirror_task_state(
                self.task_manager,
                task_id,
                stage=f"Processed {summary.processed} of {count} source(s)",
                processed=summary.processed,
                failed=summary.failed,
            )
            if index < count - 1 and await cooldown(self.cooldown_seconds, stop_event):
                summary.cancelled = True
                break

        summary.success = summary.failed == 0
        summary.message = batch_message(
            processed=summary.processed,
            failed=summary.failed,
            requested=count,
            stopped_early=summary.stopped_early,
            cancelled=summary.cancelled,
            noun="source",
        )
        logger.info(
            "Source batch finished",
            extra={**log_info, "processed": summary.processed, "failed": summary.failed},
        )
        await mirror_task_state(
            self.task_manager,
            task_id,
            status="completed",
            stage=summary.message,
            summary=summary.to_dict(),
            error_message=None,
        )
        return summary

    async def _process_source(
        self,
        track_key: str,
        usage_key: str,
        source_id: int,
        source_text: str,
    ) -> SourceResult:
        try:
            outcome = await with_timeout(
                self.generator.generate(track_key, source_id, source_text),
                seconds=self.generation_timeout,
                operation="generation.generate",
            )
        except ExternalCallTimeoutError as exc:
            return SourceResult(source_id=source_id, success=False, message=str(exc), error_code=errors.TIMEOUT)
        except ExternalAPIError as exc:
            return SourceResult(
                source_id=source_id,
                success=False,
                message=f"Generation error: {exc.message}",
                error_code=errors.TASK_EXECUTION_FAILED,
            )

        if not outcome.success:
            return SourceResult(
                source_id=source_id,
                success=False,
                message=outcome.message,
                error_code=errors.TASK_EXECUTION_FAILED,
            )
        if outcome.item_count == 0:
            # The source stays unmarked so a later batch can retry it
            logger.warning("Generation returned no items", extra={"source_id": source_id, "track_key": track_key})
            return SourceResult(
                source_id=source_id,
                success=False,
                message="Generation returned no items",
                item_count=0,
                error_code=errors.EMPTY_RESULT,
            )

        try:
            await with_timeout(
                self.source_repository.mark_used(source_id, usage_key),
                seconds=self.store_timeout,
                operation="sources.mark_used",
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            logger.warning(
                "Failed to mark source as used",
                extra={"source_id": source_id, "usage_key": usage_key, "error": str(exc)},
            )

        return SourceResult(
            source_id=source_id,
            success=True,
            message=outcome.message,
            item_count=outcome.item_count,
        )
