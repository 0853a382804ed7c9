"""Source content generation API endpoints."""

import logging
import uuid

from fastapi import APIRouter

from setbuilder.dependencies import CronAuthorized, GenerationService, SourceRepo, Tasks
from setbuilder.schemas.set_builder import BatchSummaryResponse, GenerationBatchRequest
from setbuilder.services.source_batch import SourceBatchProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/batch", response_model=BatchSummaryResponse)
async def run_generation_batch(
    request: GenerationBatchRequest,
    _authorized: CronAuthorized,
    source_repository: SourceRepo,
    generator: GenerationService,
    task_manager: Tasks,
) -> BatchSummaryResponse:
    """Generate trivia items from the next unprocessed sources of a track."""
    task_id = str(uuid.uuid4())
    logger.info(
        "Generation batch requested",
        extra={"task_id": task_id, "track_key": request.track_key, "count": request.count},
    )
    processor = SourceBatchProcessor(source_repository, generator, task_manager=task_manager)
    summary = await processor.run(request.track_key, request.count, task_id=task_id)
    return BatchSummaryResponse.model_validate({"task_id": task_id, **summary.to_dict()})
