"""Logging setup: readable log lines with structured extras appended as JSON."""

import json
import logging
import sys
from typing import Any

# Attributes every LogRecord carries; anything else came in through `extra=`.
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


class JSONExtrasFormatter(logging.Formatter):
    """Render `timestamp | LEVEL | logger | message {extras}`.

    Example:
        2026-01-15 10:30:45 | INFO     | setbuilder.services.process_builder.executor | Task completed {"task_id": "query-questions"}
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        line = (
            f"{self.formatTime(record, self.datefmt)} | {record.levelname:<8} | "
            f"{record.name} | {record.message}"
        )

        extras = self._collect_extras(record)
        if extras:
            try:
                line = f"{line} {json.dumps(extras, default=str, ensure_ascii=False)}"
            except (TypeError, ValueError):
                line = f"{line} {extras!r}"

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line = f"{line}\n{record.exc_text}"
        if record.stack_info:
            line = f"{line}\n{self.formatStack(record.stack_info)}"
        return line

    @staticmethod
    def _collect_extras(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        }


def setup_logging(level: int | str | None = None) -> None:
    """Attach a stdout handler to the 'setbuilder' logger (idempotent)."""
    from setbuilder.config import settings

    resolved_level = level or (logging.DEBUG if settings.debug else logging.INFO)
    logger = logging.getLogger("setbuilder")
    logger.setLevel(resolved_level)

    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
