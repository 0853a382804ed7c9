"""Shared summary shape for sequential batch jobs."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any


@dataclass
class BatchSummary:
    success: bool
    processed: int
    failed: int
    total_requested: int
    results: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    message: str = ""
    stopped_early: bool = False
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "processed": self.processed,
            "failed": self.failed,
            "total_requested": self.total_requested,
            "results": [asdict(item) if is_dataclass(item) else item for item in self.results],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "message": self.message,
            "stopped_early": self.stopped_early,
            "cancelled": self.cancelled,
        }


def batch_message(
    *,
    processed: int,
    failed: int,
    requested: int,
    stopped_early: bool,
    noun: str,
    cancelled: bool = False,
) -> str:
    """Operator-facing outcome line; wording depends on how the loop ended."""
    attempted = processed + failed
    if processed == requested and failed == 0:
        return f"Successfully processed all {processed} requested {noun}(s)."
    if cancelled:
        return (
            f"Processed {processed} {noun}(s), {failed} failed. "
            f"Stopped after {attempted} of {requested} requested {noun}(s)."
        )
    if stopped_early:
        if failed == 0:
            return (
                f"Processed {processed} {noun}(s) (all available). "
                f"Requested {requested}, but only {attempted} could be attempted before candidates ran out."
            )
        return (
            f"Processed {processed} {noun}(s), {failed} failed. "
            f"Requested {requested}, but only {attempted} could be attempted before candidates ran out."
        )
    return (
        f"Processed {processed} {noun}(s), {failed} failed. "
        f"{requested - attempted} {noun}(s) were skipped due to errors."
    )


async def cooldown(seconds: float, stop_event: asyncio.Event | None = None) -> bool:
    """Sleep between runs; returns True when a stop was requested meanwhile."""
    if stop_event is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return False
    if stop_event.is_set():
        return True
    if seconds <= 0:
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True
