"""Usage counter tracking for questions included in stored sets."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import (
    ExternalCallTimeoutError,
    RepositoryError,
    UnsupportedOperationError,
)
from setbuilder.repositories.trivia_repository import TriviaRepository
from setbuilder.services.trivia_sets.formats import TriviaFormat

logger = logging.getLogger(__name__)


@dataclass
class UsageUpdateResult:
    success: bool
    updated: int = 0
    used_fallback: bool = False
    failed_ids: list[int] = field(default_factory=list)
    error: str | None = None


def extract_question_ids(question_data: Iterable[Mapping[str, Any]]) -> list[int]:
    """Source ids of set items, skipping anything that is not an integer id."""
    ids: list[int] = []
    for item in question_data:
        source_id = item.get("source_id") if isinstance(item, Mapping) else None
        if isinstance(source_id, int) and not isinstance(source_id, bool):
            ids.append(source_id)
    return ids


class UsageTracker:
    """Increments global usage counters, preferring the atomic store path."""

    def __init__(self, repository: TriviaRepository, *, call_timeout: float | None = None) -> None:
        self.repository = repository
        self.call_timeout = settings.store_call_timeout_seconds if call_timeout is None else call_timeout

    async def increment(self, fmt: TriviaFormat, question_ids: Sequence[int]) -> UsageUpdateResult:
        ids = list(dict.fromkeys(question_ids))
        if not ids:
            return UsageUpdateResult(success=True)

        try:
            await with_timeout(
                self.repository.increment_usage(fmt, ids),
                seconds=self.call_timeout,
                operation=f"{fmt.key}.increment_usage",
            )
            return UsageUpdateResult(success=True, updated=len(ids))
        except UnsupportedOperationError:
            logger.warning(
                "Atomic usage increment unavailable, falling back to read-modify-write",
                extra={"set_type": fmt.key, "question_count": len(ids)},
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            logger.warning(
                "Usage increment failed",
                extra={"set_type": fmt.key, "question_ids": ids, "error": str(exc)},
            )
            return UsageUpdateResult(success=False, error=str(exc))

        return await self._increment_each(fmt, ids)

    async def _increment_each(self, fmt: TriviaFormat, ids: list[int]) -> UsageUpdateResult:
        # Not atomic: a concurrent writer between read and write loses an increment
        failed: list[int] = []
        for question_id in ids:
            try:
                current = await with_timeout(
                    self.repository.get_usage_count(fmt, question_id),
                    seconds=self.call_timeout,
                    operation=f"{fmt.key}.get_usage_count",
                )
                if current is None:
                    failed.append(question_id)
                    continue
                await with_timeout(
                    self.repository.set_usage_count(fmt, question_id, current + 1),
                    seconds=self.call_timeout,
                    operation=f"{fmt.key}.set_usage_count",
                )
            except (RepositoryError, ExternalCallTimeoutError) as exc:
                logger.warning(
                    "Usage increment failed for question",
                    extra={"set_type": fmt.key, "question_id": question_id, "error": str(exc)},
                )
                failed.append(question_id)

        if failed:
            return UsageUpdateResult(
                success=False,
                updated=len(ids) - len(failed),
                used_fallback=True,
                failed_ids=failed,
                error=f"Failed to update {len(failed)} question(s)",
            )
        return UsageUpdateResult(success=True, updated=len(ids), used_fallback=True)

    async def track_set(self, fmt: TriviaFormat, record: Mapping[str, Any]) -> UsageUpdateResult:
        return await self.increment(fmt, extract_question_ids(record.get("question_data") or []))
