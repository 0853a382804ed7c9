"""Custom exception classes for the application."""

from typing import Any


class SetBuilderError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Process builder errors
class ProcessBuilderError(SetBuilderError):
    """Base class for process builder errors."""

    pass


class TaskValidationError(ProcessBuilderError):
    """A task's pre-condition check rejected the pipeline context."""

    def __init__(self, task_id: str, message: str | None) -> None:
        self.task_id = task_id
        super().__init__(
            f"Task {task_id} validation failed: {message or 'unknown reason'}",
            {"task_id": task_id},
        )


class UnknownSetTypeError(ProcessBuilderError):
    """No process builder is registered for a set type."""

    def __init__(self, set_type: str) -> None:
        super().__init__(f"Unknown trivia set type: {set_type}")


class UnknownTrackError(ProcessBuilderError):
    """No generation track is registered under a key."""

    def __init__(self, track_key: str) -> None:
        super().__init__(f"Unknown generation track: {track_key}")


# Store errors
class RepositoryError(SetBuilderError):
    """Read or write against the content store failed."""

    pass


class SlugConflictError(RepositoryError):
    """Insert rejected because the slug is already taken."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Slug already exists: {slug}", {"slug": slug})


class UnsupportedOperationError(RepositoryError):
    """The store does not offer the requested operation."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Operation not supported by store: {operation}")


class ConfigNotFoundError(SetBuilderError):
    """Automated set builder configuration row is missing."""

    def __init__(self) -> None:
        super().__init__("Automated set builder configuration not found")


# External API errors
class ExternalAPIError(SetBuilderError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str) -> None:
        super().__init__(f"{api_name} API error: {message}")


class ExternalCallTimeoutError(SetBuilderError):
    """A bounded external call did not finish in time."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} timed out after {timeout_seconds:.1f}s",
            {"operation": operation, "timeout_seconds": timeout_seconds},
        )
