"""Builder configuration record and the collection of built sets."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from setbuilder.core.database import get_session_context
from setbuilder.core.db_retry import run_with_transient_db_retry
from setbuilder.core.exceptions import ConfigNotFoundError, RepositoryError
from setbuilder.models.set_builder import (
    CONFIG_ROW_ID,
    AutomatedSetBuilderConfig,
    CollectionTriviaSet,
)

logger = logging.getLogger(__name__)

CONFIG_UPDATABLE_FIELDS = (
    "enabled",
    "sets_per_day",
    "questions_per_set",
    "themes",
    "balance_themes",
    "cron_schedule",
    "last_run_at",
    "last_run_status",
    "last_run_message",
)


@dataclass(frozen=True)
class BuilderConfig:
    enabled: bool
    sets_per_day: int
    questions_per_set: int
    themes: tuple[str, ...] | None
    balance_themes: bool
    cron_schedule: str
    last_run_at: datetime | None = None
    last_run_status: str | None = None
    last_run_message: str | None = None

    @classmethod
    def from_model(cls, row: AutomatedSetBuilderConfig) -> BuilderConfig:
        return cls(
            enabled=bool(row.enabled),
            sets_per_day=row.sets_per_day,
            questions_per_set=row.questions_per_set,
            themes=tuple(row.themes) if row.themes is not None else None,
            balance_themes=bool(row.balance_themes),
            cron_schedule=row.cron_schedule,
            last_run_at=row.last_run_at,
            last_run_status=row.last_run_status,
            last_run_message=row.last_run_message,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "sets_per_day": self.sets_per_day,
            "questions_per_set": self.questions_per_set,
            "themes": list(self.themes) if self.themes is not None else None,
            "balance_themes": self.balance_themes,
            "cron_schedule": self.cron_schedule,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_message": self.last_run_message,
        }


class SetBuilderRepository(Protocol):
    async def get_config(self) -> BuilderConfig | None: ...

    async def update_config(self, updates: Mapping[str, Any]) -> BuilderConfig: ...

    async def insert_collection_entry(
        self,
        *,
        publish_date: date,
        sets: Sequence[Mapping[str, Any]],
        run_status: str = "completed",
        run_message: str | None = None,
    ) -> int: ...


class SqlSetBuilderRepository:
    """SetBuilderRepository backed by PostgreSQL."""

    def __init__(self, *, attempts: int = 3) -> None:
        self.attempts = attempts

    async def _run(self, operation: Any, *, operation_name: str) -> Any:
        try:
            return await run_with_transient_db_retry(
                operation,
                operation_name=operation_name,
                attempts=self.attempts,
            )
        except SQLAlchemyError as exc:
            logger.warning(
                "Set builder store operation failed",
                extra={"operation": operation_name, "error": repr(exc)},
            )
            raise RepositoryError(f"{operation_name} failed: {exc}", {"operation": operation_name}) from exc

    async def get_config(self) -> BuilderConfig | None:
        async def _query() -> BuilderConfig | None:
            async with get_session_context(commit_on_exit=False) as session:
                row = await session.get(AutomatedSetBuilderConfig, CONFIG_ROW_ID)
                return BuilderConfig.from_model(row) if row is not None else None

        return await self._run(_query, operation_name="get_config")

    async def update_config(self, updates: Mapping[str, Any]) -> BuilderConfig:
        values = {key: value for key, value in updates.items() if key in CONFIG_UPDATABLE_FIELDS}

        async def _update() -> BuilderConfig:
            async with get_session_context() as session:
                result = await session.execute(
                    select(AutomatedSetBuilderConfig).where(AutomatedSetBuilderConfig.id == CONFIG_ROW_ID)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise ConfigNotFoundError()
                for key, value in values.items():
                    if key == "themes" and value is not None:
                        value = list(value)
                    setattr(row, key, value)
                await session.flush()
                return BuilderConfig.from_model(row)

        return await self._run(_update, operation_name="update_config")

    async def insert_collection_entry(
        self,
        *,
        publish_date: date,
        sets: Sequence[Mapping[str, Any]],
        run_status: str = "completed",
        run_message: str | None = None,
    ) -> int:
        async def _insert() -> int:
            async with get_session_context() as session:
                row = CollectionTriviaSet(
                    publish_date=publish_date,
                    sets=[dict(entry) for entry in sets],
                    set_count=len(sets),
                    run_status=run_status,
                    run_message=run_message,
                )
                session.add(row)
                await session.flush()
                return row.id

        return await self._run(_insert, operation_name="insert_collection_entry")
