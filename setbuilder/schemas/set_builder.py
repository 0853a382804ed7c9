"""Set builder, process builder and generation batch schemas."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

SetType = Literal["mc", "tf", "wai"]
BatchSetType = Literal["mc", "tf", "wai", "mix"]
RuleTypeName = Literal["string", "number", "boolean", "array", "object"]
TrackKey = Literal["trivia_multiple_choice", "trivia_true_false", "trivia_who_am_i"]


def _clean_themes(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    themes = [theme.strip() for theme in value if theme and theme.strip()]
    return themes or None


class RunOverrides(BaseModel):
    """Per-run overrides of the stored builder configuration."""

    questions_per_set: int | None = Field(default=None, ge=1, le=100)
    themes: list[str] | None = Field(
        default=None,
        description="Themes to draw from. An explicit null means every theme.",
    )
    balance_themes: bool | None = None

    @field_validator("themes")
    @classmethod
    def _normalize_themes(cls, value: list[str] | None) -> list[str] | None:
        return _clean_themes(value)


class RunBatchRequest(BaseModel):
    """Schema for triggering an automated set building batch."""

    count: int | None = Field(
        default=None,
        ge=1,
        le=50,
        description="Number of sets to build. Defaults to the configured sets_per_day.",
    )
    set_type: BatchSetType = "mc"
    publish_date: date | None = None
    overrides: RunOverrides | None = None


class BatchSummaryResponse(BaseModel):
    """Outcome of a sequential batch run."""

    task_id: str | None = None
    success: bool
    processed: int
    failed: int
    total_requested: int
    results: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    message: str
    stopped_early: bool = False
    cancelled: bool = False


class BuilderConfigResponse(BaseModel):
    enabled: bool
    sets_per_day: int
    questions_per_set: int
    themes: list[str] | None = None
    balance_themes: bool
    cron_schedule: str
    last_run_at: datetime | None = None
    last_run_status: str | None = None
    last_run_message: str | None = None


class TrackAvailability(BaseModel):
    available: int
    total: int


class SetBuilderStatusResponse(BaseModel):
    """Builder configuration plus unprocessed source counts per track."""

    config: BuilderConfigResponse
    sources: dict[str, TrackAvailability] = Field(default_factory=dict)


class ConfigUpdateRequest(BaseModel):
    """Schema for a partial builder configuration update."""

    enabled: bool | None = None
    sets_per_day: int | None = Field(default=None, ge=1, le=50)
    questions_per_set: int | None = Field(default=None, ge=1, le=100)
    themes: list[str] | None = None
    balance_themes: bool | None = None
    cron_schedule: str | None = Field(default=None, min_length=1, max_length=100)

    @field_validator("themes")
    @classmethod
    def _normalize_themes(cls, value: list[str] | None) -> list[str] | None:
        return _clean_themes(value)


class RuleInput(BaseModel):
    value: Any
    type: RuleTypeName


class BuildSetRequest(BaseModel):
    """Schema for building one trivia set through its process builder."""

    goal: str = Field(description="Theme the set is built around.")
    rules: dict[str, RuleInput] = Field(default_factory=dict)
    dry_run: bool = False
    allow_partial_results: bool = False


class ProcessErrorResponse(BaseModel):
    code: str
    message: str
    task_id: str | None = None
    details: Any = None


class TaskResultResponse(BaseModel):
    success: bool
    errors: list[ProcessErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class PipelineResultResponse(BaseModel):
    """Schema for a finished process builder run."""

    status: Literal["success", "partial", "error"]
    process_id: str
    process_name: str
    task_results: list[TaskResultResponse] = Field(default_factory=list)
    final_result: Any = None
    errors: list[ProcessErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    execution_time_ms: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class NumericLimitResponse(BaseModel):
    min: float | None = None
    max: float | None = None


class ProcessBuilderMetadataResponse(BaseModel):
    id: str
    set_type: SetType
    name: str
    description: str
    version: str
    tasks: list[str]
    required_rules: list[str]
    optional_rules: list[str]
    defaults: dict[str, Any] = Field(default_factory=dict)
    limits: dict[str, NumericLimitResponse] = Field(default_factory=dict)


class GenerationBatchRequest(BaseModel):
    """Schema for a source content generation batch."""

    track_key: TrackKey
    count: int = Field(default=1, ge=1, le=50)


class TaskStatusResponse(BaseModel):
    """Schema for batch task status response."""

    task_id: str
    status: str
    kind: str | None = None
    stage: str | None = None
    processed: int = 0
    failed: int = 0
    total_requested: int | None = None
    progress_percent: float | None = None
    error_message: str | None = None
    summary: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
