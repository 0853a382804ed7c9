"""Candidate store: published source questions and the sets built from them."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from setbuilder.core.database import get_session_context
from setbuilder.core.db_retry import run_with_transient_db_retry
from setbuilder.core.exceptions import RepositoryError, SlugConflictError
from setbuilder.services.trivia_sets.formats import SourceQuestion, TriviaFormat

logger = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")

PUBLISHED = "published"

SET_RECORD_FIELDS = (
    "id",
    "title",
    "slug",
    "description",
    "category",
    "theme",
    "difficulty",
    "tags",
    "question_data",
    "question_count",
    "estimated_duration",
    "status",
    "visibility",
    "published_at",
    "scheduled_for",
    "created_at",
    "updated_at",
)


class TriviaRepository(Protocol):
    """Narrow interface the pipelines and the selector depend on."""

    async def list_published(
        self,
        fmt: TriviaFormat,
        *,
        theme: str,
        category: str | None = None,
    ) -> list[SourceQuestion]: ...

    async def list_by_usage(
        self,
        fmt: TriviaFormat,
        *,
        limit: int,
        themes: Sequence[str] | None = None,
        exclude_ids: Sequence[int] = (),
    ) -> list[SourceQuestion]: ...

    async def slug_exists(self, fmt: TriviaFormat, slug: str) -> bool: ...

    async def insert_set(self, fmt: TriviaFormat, record: Mapping[str, Any]) -> dict[str, Any]: ...

    async def increment_usage(self, fmt: TriviaFormat, question_ids: Sequence[int]) -> None: ...

    async def get_usage_count(self, fmt: TriviaFormat, question_id: int) -> int | None: ...

    async def set_usage_count(self, fmt: TriviaFormat, question_id: int, count: int) -> None: ...


def set_to_record(row: Any) -> dict[str, Any]:
    return {name: getattr(row, name, None) for name in SET_RECORD_FIELDS}


class SqlTriviaRepository:
    """TriviaRepository backed by PostgreSQL via short-lived sessions."""

    def __init__(self, *, attempts: int = 3) -> None:
        self.attempts = attempts

    async def _run(
        self,
        operation: Callable[[], Awaitable[_ResultT]],
        *,
        operation_name: str,
        fmt: TriviaFormat,
    ) -> _ResultT:
        try:
            return await run_with_transient_db_retry(
                operation,
                operation_name=operation_name,
                attempts=self.attempts,
                log_context={"set_type": fmt.key},
            )
        except SlugConflictError:
            raise
        except SQLAlchemyError as exc:
            logger.warning(
                "Candidate store operation failed",
                extra={"operation": operation_name, "set_type": fmt.key, "error": repr(exc)},
            )
            raise RepositoryError(
                f"{operation_name} failed: {exc}",
                {"operation": operation_name, "set_type": fmt.key},
            ) from exc

    async def list_published(
        self,
        fmt: TriviaFormat,
        *,
        theme: str,
        category: str | None = None,
    ) -> list[SourceQuestion]:
        model = fmt.source_model

        async def _query() -> list[SourceQuestion]:
            async with get_session_context(commit_on_exit=False) as session:
                stmt = select(model).where(model.status == PUBLISHED)
                if theme:
                    stmt = stmt.where(model.theme.icontains(theme, autoescape=True))
                if category:
                    stmt = stmt.where(model.category == category)
                result = await session.execute(stmt.order_by(model.id))
                return [fmt.to_question(row) for row in result.scalars()]

        return await self._run(_query, operation_name="list_published", fmt=fmt)

    async def list_by_usage(
        self,
        fmt: TriviaFormat,
        *,
        limit: int,
        themes: Sequence[str] | None = None,
        exclude_ids: Sequence[int] = (),
    ) -> list[SourceQuestion]:
        """Published questions ordered by (global_usage_count, id) ascending."""
        model = fmt.source_model

        async def _query() -> list[SourceQuestion]:
            async with get_session_context(commit_on_exit=False) as session:
                stmt = select(model).where(model.status == PUBLISHED)
                theme_filters = [
                    model.theme.icontains(theme, autoescape=True)
                    for theme in (themes or [])
                    if theme.strip()
                ]
                if theme_filters:
                    stmt = stmt.where(or_(*theme_filters))
                if exclude_ids:
                    stmt = stmt.where(model.id.not_in(list(exclude_ids)))
                stmt = stmt.order_by(model.global_usage_count.asc(), model.id.asc()).limit(limit)
                result = await session.execute(stmt)
                return [fmt.to_question(row) for row in result.scalars()]

        return await self._run(_query, operation_name="list_by_usage", fmt=fmt)

    async def slug_exists(self, fmt: TriviaFormat, slug: str) -> bool:
        model = fmt.set_model

        async def _query() -> bool:
            async with get_session_context(commit_on_exit=False) as session:
                result = await session.execute(select(model.id).where(model.slug == slug).limit(1))
                return result.scalar_one_or_none() is not None

        return await self._run(_query, operation_name="slug_exists", fmt=fmt)

    async def insert_set(self, fmt: TriviaFormat, record: Mapping[str, Any]) -> dict[str, Any]:
        model = fmt.set_model
        values = {key: value for key, value in record.items() if key in SET_RECORD_FIELDS and key != "id"}

        async def _insert() -> dict[str, Any]:
            try:
                async with get_session_context() as session:
                    row = model(**values)
                    session.add(row)
                    await session.flush()
                    await session.refresh(row)
                    return set_to_record(row)
            except IntegrityError as exc:
                if "slug" in str(exc.orig).lower():
                    raise SlugConflictError(str(values.get("slug"))) from exc
                raise

        return await self._run(_insert, operation_name="insert_set", fmt=fmt)

    async def increment_usage(self, fmt: TriviaFormat, question_ids: Sequence[int]) -> None:
        """Atomically add one to each question's usage counter."""
        if not question_ids:
            return
        model = fmt.source_model

        async def _update() -> None:
            async with get_session_context() as session:
                await session.execute(
                    update(model)
                    .where(model.id.in_(list(question_ids)))
                    .values(global_usage_count=model.global_usage_count + 1)
                )

        await self._run(_update, operation_name="increment_usage", fmt=fmt)

    async def get_usage_count(self, fmt: TriviaFormat, question_id: int) -> int | None:
        model = fmt.source_model

        async def _query() -> int | None:
            async with get_session_context(commit_on_exit=False) as session:
                result = await session.execute(
                    select(model.global_usage_count).where(model.id == question_id)
                )
                return result.scalar_one_or_none()

        return await self._run(_query, operation_name="get_usage_count", fmt=fmt)

    async def set_usage_count(self, fmt: TriviaFormat, question_id: int, count: int) -> None:
        model = fmt.source_model

        async def _update() -> None:
            async with get_session_context() as session:
                await session.execute(
                    update(model).where(model.id == question_id).values(global_usage_count=count)
                )

        await self._run(_update, operation_name="set_usage_count", fmt=fmt)
