"""Process builder API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic_core import to_jsonable_python

from setbuilder.api.v1.process_builders.constants import PROCESS_BUILDER_NOT_FOUND_DETAIL
from setbuilder.dependencies import TriviaRepo
from setbuilder.schemas.set_builder import (
    BuildSetRequest,
    NumericLimitResponse,
    PipelineResultResponse,
    ProcessBuilderMetadataResponse,
    ProcessErrorResponse,
    TaskResultResponse,
)
from setbuilder.services.process_builder.types import (
    Goal,
    PipelineResult,
    ProcessBuilderMetadata,
    Rule,
    RunOptions,
    make_rules,
)
from setbuilder.services.process_builder.validation import validate_rules
from setbuilder.services.trivia_sets.builder import PROCESS_BUILDERS, build_trivia_set
from setbuilder.services.trivia_sets.formats import FORMATS

logger = logging.getLogger(__name__)

router = APIRouter()


def _metadata_response(set_type: str, metadata: ProcessBuilderMetadata) -> ProcessBuilderMetadataResponse:
    return ProcessBuilderMetadataResponse(
        id=metadata.id,
        set_type=set_type,
        name=metadata.name,
        description=metadata.description,
        version=metadata.version,
        tasks=list(metadata.tasks),
        required_rules=list(metadata.required_rules),
        optional_rules=list(metadata.optional_rules),
        defaults=dict(metadata.defaults),
        limits={
            key: NumericLimitResponse(min=limit.min, max=limit.max)
            for key, limit in metadata.limits.items()
        },
    )


def _pipeline_response(result: PipelineResult) -> PipelineResultResponse:
    return PipelineResultResponse(
        status=result.status,
        process_id=result.process_id,
        process_name=result.process_name,
        task_results=[
            TaskResultResponse(
                success=task_result.success,
                errors=[ProcessErrorResponse(**error.to_dict()) for error in task_result.errors],
                warnings=list(task_result.warnings),
                metadata=to_jsonable_python(task_result.metadata),
            )
            for task_result in result.task_results
        ],
        final_result=to_jsonable_python(result.final_result),
        errors=[ProcessErrorResponse(**error.to_dict()) for error in result.errors],
        warnings=list(result.warnings),
        execution_time_ms=result.execution_time_ms,
        metadata=to_jsonable_python(dict(result.metadata)),
    )


@router.get("", response_model=list[ProcessBuilderMetadataResponse])
async def list_process_builders() -> list[ProcessBuilderMetadataResponse]:
    """List registered process builders and their rule contracts."""
    return [_metadata_response(set_type, metadata) for set_type, metadata in PROCESS_BUILDERS.items()]


@router.post("/{set_type}/build", response_model=PipelineResultResponse)
async def build_set(
    set_type: str,
    request: BuildSetRequest,
    trivia_repository: TriviaRepo,
) -> PipelineResultResponse:
    """Run one process builder and return its pipeline result.

    Pipeline failures are reported in the body; only unknown set types and
    rules that break the builder's contract are rejected up front.
    """
    fmt = FORMATS.get(set_type)
    metadata = PROCESS_BUILDERS.get(set_type)
    if fmt is None or metadata is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=PROCESS_BUILDER_NOT_FOUND_DETAIL,
        )

    rules = make_rules(
        *(Rule(key=key, value=rule.value, type=rule.type) for key, rule in request.rules.items())
    )
    validation = validate_rules(metadata, rules)
    if not validation.valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": validation.error,
                "details": dict(validation.details) if validation.details else None,
            },
        )

    result = await build_trivia_set(
        fmt,
        Goal(text=request.goal),
        rules,
        RunOptions(
            allow_partial_results=request.allow_partial_results,
            dry_run=request.dry_run,
        ),
        repository=trivia_repository,
    )
    return _pipeline_response(result)
