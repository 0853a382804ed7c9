"""Client for the content generation collaborator.

The collaborator turns source text into trivia items for a track and
stores them itself; this client only reports what happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from setbuilder.config import settings
from setbuilder.core.exceptions import ExternalAPIError

logger = logging.getLogger(__name__)

ErrorType = Literal["technical", "structural", "logical"]

# Track key -> marker written to source_content_ingested.used_for
TRACK_USAGE_KEYS: dict[str, str] = {
    "trivia_multiple_choice": "multiple-choice",
    "trivia_true_false": "true-false",
    "trivia_who_am_i": "who-am-i",
}


@dataclass(frozen=True)
class GenerationOutcome:
    success: bool
    message: str
    item_count: int = 0
    error_type: ErrorType | None = None


class GenerationClient:
    """Async HTTP client for the generation endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.generation_api_url
        self.api_key = api_key or settings.generation_api_key
        self.timeout = timeout or settings.generation_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GenerationClient":
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def generate(self, track_key: str, source_id: int, source_text: str) -> GenerationOutcome:
        """Ask the collaborator to generate and store items for one source.

        Raises:
            ExternalAPIError: On transport errors or non-2xx responses.
        """
        logger.info("Requesting generation", extra={"track_key": track_key, "source_id": source_id})
        try:
            response = await self.client.post(
                self.base_url,
                json={
                    "track_key": track_key,
                    "source_id": source_id,
                    "source_text": source_text,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Generation HTTP error", extra={"source_id": source_id, "error": str(exc)})
            raise ExternalAPIError("Generation", str(exc)) from exc

        if response.status_code >= 400:
            logger.warning(
                "Generation API error",
                extra={"source_id": source_id, "status": response.status_code},
            )
            raise ExternalAPIError("Generation", f"API error: {response.status_code} - {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalAPIError("Generation", "Response was not valid JSON") from exc
        return self.parse_outcome(payload)

    @staticmethod
    def parse_outcome(payload: Any) -> GenerationOutcome:
        """Normalize the collaborator's loosely-typed response."""
        if not isinstance(payload, dict):
            return GenerationOutcome(
                success=False,
                message="Generation returned an unexpected payload",
                error_type="structural",
            )

        items = payload.get("items")
        item_count = payload.get("item_count")
        if not isinstance(item_count, int) or isinstance(item_count, bool):
            item_count = len(items) if isinstance(items, list) else 0

        success = bool(payload.get("success", True))
        message = str(payload.get("message") or payload.get("error") or "")
        error_type = payload.get("error_type")
        if error_type not in ("technical", "structural", "logical"):
            error_type = None if success else "technical"

        return GenerationOutcome(
            success=success,
            message=message or ("Generation succeeded" if success else "Generation failed with unknown error."),
            item_count=max(item_count, 0),
            error_type=error_type,
        )
