"""Automated set builder API endpoints."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status

from setbuilder.api.v1.set_builder.constants import (
    CONFIG_NOT_FOUND_DETAIL,
    CONFIG_UNAVAILABLE_DETAIL,
    EMPTY_CONFIG_UPDATE_DETAIL,
)
from setbuilder.config import settings
from setbuilder.core.deadlines import with_timeout
from setbuilder.core.exceptions import ConfigNotFoundError, ExternalCallTimeoutError, RepositoryError
from setbuilder.dependencies import CronAuthorized, SetBuilderRepo, SourceRepo, Tasks, TriviaRepo
from setbuilder.integrations.generation import TRACK_USAGE_KEYS
from setbuilder.repositories.set_builder_repository import BuilderConfig
from setbuilder.schemas.set_builder import (
    BatchSummaryResponse,
    BuilderConfigResponse,
    ConfigUpdateRequest,
    RunBatchRequest,
    SetBuilderStatusResponse,
    TrackAvailability,
)
from setbuilder.services.set_builder.automated import AutomatedSetBuilder
from setbuilder.services.set_builder.config import SetBuilderConfigService

logger = logging.getLogger(__name__)

router = APIRouter()


def _config_response(config: BuilderConfig) -> BuilderConfigResponse:
    return BuilderConfigResponse.model_validate(config.to_dict())


@router.post("/run", response_model=BatchSummaryResponse)
async def run_set_builder(
    request: RunBatchRequest,
    _authorized: CronAuthorized,
    trivia_repository: TriviaRepo,
    set_builder_repository: SetBuilderRepo,
    task_manager: Tasks,
) -> BatchSummaryResponse:
    """Build a batch of trivia sets and store each one in the collection."""
    task_id = str(uuid.uuid4())
    builder = AutomatedSetBuilder(
        trivia_repository,
        set_builder_repository,
        task_manager=task_manager,
    )
    overrides = request.overrides.model_dump(exclude_unset=True) if request.overrides else None

    logger.info(
        "Set builder batch requested",
        extra={"task_id": task_id, "set_type": request.set_type, "count": request.count},
    )
    summary = await builder.build_automated_sets(
        publish_date=request.publish_date,
        number_of_sets=request.count,
        set_type=request.set_type,
        overrides=overrides,
        task_id=task_id,
    )
    return BatchSummaryResponse.model_validate({"task_id": task_id, **summary.to_dict()})


@router.get("/status", response_model=SetBuilderStatusResponse)
async def get_set_builder_status(
    set_builder_repository: SetBuilderRepo,
    source_repository: SourceRepo,
) -> SetBuilderStatusResponse:
    """Return the builder configuration, its last run and source availability."""
    config = await SetBuilderConfigService(set_builder_repository).get_config()
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=CONFIG_NOT_FOUND_DETAIL,
        )

    sources: dict[str, TrackAvailability] = {}
    for track_key, usage_key in TRACK_USAGE_KEYS.items():
        try:
            availability = await with_timeout(
                source_repository.count_unprocessed(usage_key),
                seconds=settings.store_call_timeout_seconds,
                operation="sources.count_unprocessed",
            )
        except (RepositoryError, ExternalCallTimeoutError) as exc:
            logger.warning(
                "Failed to count unprocessed sources",
                extra={"track_key": track_key, "error": str(exc)},
            )
            continue
        sources[track_key] = TrackAvailability(
            available=availability.available,
            total=availability.total,
        )

    return SetBuilderStatusResponse(config=_config_response(config), sources=sources)


@router.patch("/config", response_model=BuilderConfigResponse)
async def update_set_builder_config(
    request: ConfigUpdateRequest,
    set_builder_repository: SetBuilderRepo,
) -> BuilderConfigResponse:
    """Apply a partial update to the builder configuration."""
    updates = request.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=EMPTY_CONFIG_UPDATE_DETAIL,
        )

    try:
        config = await SetBuilderConfigService(set_builder_repository).update_config(updates)
    except ConfigNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=CONFIG_NOT_FOUND_DETAIL,
        ) from exc
    except (RepositoryError, ExternalCallTimeoutError) as exc:
        logger.warning("Set builder config update failed", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=CONFIG_UNAVAILABLE_DETAIL,
        ) from exc

    return _config_response(config)
