"""Batch run status mirror backed by Redis."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis

from setbuilder.config import settings
from setbuilder.core.redis import get_redis_client

logger = logging.getLogger(__name__)

TASK_KEY_PREFIX = "setbuilder:task"
UNSET: object = object()


class TaskManager:
    """Store and fetch batch progress from Redis."""

    def __init__(self, redis_client: Redis | None = None) -> None:
        self.redis = redis_client or get_redis_client()
        self.ttl_seconds = settings.cache_ttl_seconds

    async def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        raw = await self.redis.get(self._task_key(task_id))
        if raw is None:
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid task payload in Redis", extra={"task_id": task_id})
            return None

    async def set_task_state(
        self,
        task_id: str,
        *,
        status: str | None = None,
        kind: str | None = None,
        stage: str | None = None,
        processed: int | None = None,
        failed: int | None = None,
        total_requested: int | None = None,
        summary: dict[str, Any] | None = None,
        error_message: str | None | object = UNSET,
    ) -> dict[str, Any]:
        """Create or update a batch's state; None arguments leave fields untouched."""
        now = self._now_iso()
        payload = await self.get_task_status(task_id) or {"task_id": task_id, "created_at": now}
        payload["updated_at"] = now

        updates = {
            "status": status,
            "kind": kind,
            "stage": stage,
            "processed": processed,
            "failed": failed,
            "total_requested": total_requested,
            "summary": summary,
        }
        for key, value in updates.items():
            if value is not None:
                payload[key] = value
        if error_message is not UNSET:
            payload["error_message"] = error_message

        total = self._to_int(payload.get("total_requested"))
        done = self._to_int(payload.get("processed")) + self._to_int(payload.get("failed"))
        if total > 0:
            payload["progress_percent"] = round(min(done / total, 1.0) * 100, 2)

        await self.redis.set(
            self._task_key(task_id),
            json.dumps(payload, default=str),
            ex=self.ttl_seconds,
        )
        return payload

    @staticmethod
    def _task_key(task_id: str) -> str:
        return f"{TASK_KEY_PREFIX}:{task_id}"

    @staticmethod
    def _to_int(value: Any, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()


async def mirror_task_state(task_manager: TaskManager | None, task_id: str | None, **fields: Any) -> None:
    """Best-effort status mirror; Redis outages never fail a batch."""
    if task_manager is None or not task_id:
        return
    try:
        await task_manager.set_task_state(task_id, **fields)
    except Exception:
        logger.warning(
            "Failed to mirror batch progress to task status",
            extra={"task_id": task_id, "status": fields.get("status")},
        )
