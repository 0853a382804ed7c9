"""Task contract for process builder pipelines."""

from abc import ABC, abstractmethod

from setbuilder.services.process_builder.types import (
    PipelineContext,
    TaskResult,
    ValidationResult,
)


class ProcessTask(ABC):
    """One unit of pipeline work.

    Subclasses should:
    1. Define task_id, name and description
    2. Optionally override validate as a pre-condition gate
    3. Implement execute, returning a TaskResult instead of raising
    """

    task_id: str
    name: str
    description: str = ""

    async def validate(self, context: PipelineContext) -> ValidationResult:
        """Pre-condition check run before execute.

        A failed check aborts the whole run, unlike an execute failure.
        """
        return ValidationResult(valid=True)

    @abstractmethod
    async def execute(self, context: PipelineContext) -> TaskResult:
        """Override with task-specific logic."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.task_id}>"
