"""Bounded-duration wrappers for calls that leave the process."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from setbuilder.core.exceptions import ExternalCallTimeoutError

logger = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")


async def with_timeout(
    awaitable: Awaitable[_ResultT],
    *,
    seconds: float | None,
    operation: str,
) -> _ResultT:
    """Await `awaitable`, raising ExternalCallTimeoutError past `seconds`.

    `None` or a non-positive value disables the bound. Cancellation of the
    caller still propagates as CancelledError.
    """
    if seconds is None or seconds <= 0:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.warning(
            "External call timed out",
            extra={"operation": operation, "timeout_seconds": seconds},
        )
        raise ExternalCallTimeoutError(operation, seconds) from exc
