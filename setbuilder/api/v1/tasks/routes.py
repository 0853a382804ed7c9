"""Task API endpoints."""

from fastapi import APIRouter, HTTPException, status

from setbuilder.api.v1.tasks.constants import TASK_NOT_FOUND_DETAIL
from setbuilder.dependencies import Tasks
from setbuilder.schemas.set_builder import TaskStatusResponse

router = APIRouter()


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(task_id: str, task_manager: Tasks) -> TaskStatusResponse:
    """Get batch status from Redis."""
    task_status = await task_manager.get_task_status(task_id)

    if task_status is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=TASK_NOT_FOUND_DETAIL,
        )

    return TaskStatusResponse.model_validate(task_status)
