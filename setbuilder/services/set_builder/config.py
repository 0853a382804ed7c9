"""Reading and updating the automated set builder configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal

from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import ExternalCallTimeoutError, RepositoryError
from setbuilder.repositories.set_builder_repository import BuilderConfig, SetBuilderRepository

logger = logging.getLogger(__name__)

RunStatus = Literal["success", "partial", "failed"]


class SetBuilderConfigService:
    def __init__(self, repository: SetBuilderRepository, *, call_timeout: float | None = None) -> None:
        self.repository = repository
        self.call_timeout = settings.store_call_timeout_seconds if call_timeout is None else call_timeout

    async def get_config(self) -> BuilderConfig | None:
        """Current configuration, or None when it cannot be loaded."""
        try:
            return await with_timeout(
                self.repository.get_config(),
                seconds=self.call_timeout,
                operation="set_builder.get_config",
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            logger.warning("Failed to load set builder config", extra={"error": str(exc)})
            return None

    async def update_config(self, updates: Mapping[str, Any]) -> BuilderConfig:
        """Apply a partial update; raises ConfigNotFoundError when no row exists."""
        config = await with_timeout(
            self.repository.update_config(dict(updates)),
            seconds=self.call_timeout,
            operation="set_builder.update_config",
        )
        logger.info("Set builder config updated", extra={"fields": sorted(updates)})
        return config

    async def update_last_run(self, status: RunStatus, message: str | None = None) -> bool:
        """Record the outcome of a run; failures are logged, not raised."""
        try:
            await self.update_config(
                {
                    "last_run_at": datetime.now(timezone.utc),
                    "last_run_status": status,
                    "last_run_message": message or None,
                }
            )
        except Exception:
            logger.warning(
                "Failed to record set builder last run",
                exc_info=True,
                extra={"status": status},
            )
            return False
        return True
