"""Core types shared by every process builder pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

RuleType = Literal["string", "number", "boolean", "array", "object"]
PipelineStatus = Literal["success", "partial", "error"]

PayloadT = TypeVar("PayloadT")


@dataclass(frozen=True)
class Goal:
    """Free-text description of the desired output (usually a theme)."""

    text: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rule:
    """A typed, named constraint.

    The declared ``type`` is not checked here; see
    ``validation.validate_rule_types``.
    """

    key: str
    value: Any
    type: RuleType


Rules = Mapping[str, Rule]


def make_rules(*rules: Rule) -> dict[str, Rule]:
    """Build a rules mapping keyed by each rule's key."""
    return {rule.key: rule for rule in rules}


@dataclass(frozen=True)
class RunOptions:
    allow_partial_results: bool = False
    dry_run: bool = False
    use_cache: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcessError:
    """Structured, string-coded pipeline error."""

    code: str
    message: str
    task_id: str | None = None
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "task_id": self.task_id,
            "details": self.details,
        }


@dataclass
class TaskResult:
    success: bool
    data: Any = None
    errors: list[ProcessError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        data: Any,
        *,
        warnings: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TaskResult:
        return cls(
            success=True,
            data=data,
            warnings=list(warnings or []),
            metadata=dict(metadata or {}),
        )

    @classmethod
    def fail(
        cls,
        error: ProcessError,
        *,
        warnings: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TaskResult:
        return cls(
            success=False,
            errors=[error],
            warnings=list(warnings or []),
            metadata=dict(metadata or {}),
        )


@dataclass
class PipelineContext:
    """Mutable state threaded through a single executor run.

    ``outputs`` is the mailbox: each task's payload keyed by task id.
    """

    goal: Goal
    rules: Rules
    options: RunOptions
    previous_results: list[TaskResult] = field(default_factory=list)
    outputs: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def output(self, task_id: str, payload_type: type[PayloadT]) -> PayloadT | None:
        """Return the payload a task produced, or None if absent or mistyped."""
        payload = self.outputs.get(task_id)
        if isinstance(payload, payload_type):
            return payload
        return None

    def rule_value(self, key: str, default: Any = None) -> Any:
        rule = self.rules.get(key)
        if rule is None:
            return default
        return rule.value


@dataclass(frozen=True)
class PipelineResult:
    status: PipelineStatus
    process_id: str
    process_name: str
    task_results: tuple[TaskResult, ...]
    final_result: Any
    errors: tuple[ProcessError, ...]
    warnings: tuple[str, ...]
    execution_time_ms: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def first_error(self) -> ProcessError | None:
        return self.errors[0] if self.errors else None


@dataclass(frozen=True)
class NumericLimit:
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class ProcessBuilderMetadata:
    """Descriptive record for one registered process builder."""

    id: str
    name: str
    description: str
    version: str
    tasks: tuple[str, ...]
    required_rules: tuple[str, ...]
    optional_rules: tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    limits: Mapping[str, NumericLimit] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None
    details: Mapping[str, Any] | None = None
