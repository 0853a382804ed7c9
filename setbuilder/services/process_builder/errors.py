"""Error codes and constructors for process builder results."""

from typing import Any

from setbuilder.services.process_builder.types import ProcessError

INVALID_INPUT = "INVALID_INPUT"
INVALID_CONTEXT = "INVALID_CONTEXT"
INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
DATABASE_ERROR = "DATABASE_ERROR"
VALIDATION_FAILED = "VALIDATION_FAILED"
TASK_EXECUTION_FAILED = "TASK_EXECUTION_FAILED"
EXECUTION_ERROR = "EXECUTION_ERROR"
TIMEOUT = "TIMEOUT"
EMPTY_RESULT = "EMPTY_RESULT"
NOT_FOUND = "NOT_FOUND"
UNAUTHORIZED = "UNAUTHORIZED"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


def create_error(
    code: str,
    message: str,
    task_id: str | None = None,
    details: Any = None,
) -> ProcessError:
    return ProcessError(code=code, message=message, task_id=task_id, details=details)


def create_validation_error(message: str, details: Any = None) -> ProcessError:
    return create_error(VALIDATION_FAILED, message, details=details)


def create_task_error(task_id: str, message: str, details: Any = None) -> ProcessError:
    return create_error(TASK_EXECUTION_FAILED, message, task_id=task_id, details=details)


def format_error_for_display(error: ProcessError) -> str:
    """Render an error as ``[task] message`` for operators."""
    if error.task_id:
        return f"[{error.task_id}] {error.message}"
    return error.message
