"""Ingested source content used to feed the generation collaborator."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import func, not_, select
from sqlalchemy.exc import SQLAlchemyError

from setbuilder.core.database import get_session_context
from setbuilder.core.db_retry import run_with_transient_db_retry
from setbuilder.core.exceptions import RepositoryError
from setbuilder.models.source_content import SourceContentIngested

logger = logging.getLogger(__name__)

ACTIVE = "active"


@dataclass(frozen=True)
class SourceContent:
    id: int
    content_text: str
    title: str | None = None


@dataclass(frozen=True)
class SourceAvailability:
    available: int
    total: int


class SourceRepository(Protocol):
    async def find_next_unprocessed(
        self,
        usage_key: str,
        *,
        exclude_ids: Sequence[int] = (),
    ) -> SourceContent | None: ...

    async def mark_used(self, source_id: int, usage_key: str) -> None: ...

    async def count_unprocessed(self, usage_key: str) -> SourceAvailability: ...


class SqlSourceRepository:
    """SourceRepository backed by PostgreSQL."""

    def __init__(self, *, attempts: int = 3) -> None:
        self.attempts = attempts

    async def _run(self, operation: Any, *, operation_name: str, usage_key: str) -> Any:
        try:
            return await run_with_transient_db_retry(
                operation,
                operation_name=operation_name,
                attempts=self.attempts,
                log_context={"usage_key": usage_key},
            )
        except SQLAlchemyError as exc:
            logger.warning(
                "Source store operation failed",
                extra={"operation": operation_name, "usage_key": usage_key, "error": repr(exc)},
            )
            raise RepositoryError(f"{operation_name} failed: {exc}", {"operation": operation_name}) from exc

    async def find_next_unprocessed(
        self,
        usage_key: str,
        *,
        exclude_ids: Sequence[int] = (),
    ) -> SourceContent | None:
        """Lowest-id active source whose used_for does not yet hold `usage_key`."""

        async def _query() -> SourceContent | None:
            async with get_session_context(commit_on_exit=False) as session:
                stmt = (
                    select(SourceContentIngested)
                    .where(SourceContentIngested.content_status == ACTIVE)
                    .where(not_(SourceContentIngested.used_for.contains([usage_key])))
                )
                if exclude_ids:
                    stmt = stmt.where(SourceContentIngested.id.not_in(list(exclude_ids)))
                result = await session.execute(stmt.order_by(SourceContentIngested.id.asc()).limit(1))
                row = result.scalar_one_or_none()
                if row is None:
                    return None
                return SourceContent(id=row.id, content_text=row.content_text, title=row.title)

        return await self._run(_query, operation_name="find_next_unprocessed", usage_key=usage_key)

    async def mark_used(self, source_id: int, usage_key: str) -> None:
        async def _update() -> None:
            async with get_session_context() as session:
                row = await session.get(SourceContentIngested, source_id)
                if row is None:
                    return
                current = [str(value) for value in (row.used_for or [])]
                if usage_key.lower() in (value.lower() for value in current):
                    return
                row.used_for = [*current, usage_key]

        await self._run(_update, operation_name="mark_used", usage_key=usage_key)

    async def count_unprocessed(self, usage_key: str) -> SourceAvailability:
        async def _query() -> SourceAvailability:
            async with get_session_context(commit_on_exit=False) as session:
                active = SourceContentIngested.content_status == ACTIVE
                total = await session.scalar(select(func.count()).select_from(SourceContentIngested).where(active))
                available = await session.scalar(
                    select(func.count()).select_from(SourceContentIngested).where(
                        active,
                        not_(SourceContentIngested.used_for.contains([usage_key])),
                    )
                )
                return SourceAvailability(available=int(available or 0), total=int(total or 0))

        return await self._run(_query, operation_name="count_unprocessed", usage_key=usage_key)
