"""FastAPI dependencies."""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from setbuilder.config import settings
from setbuilder.integrations.generation import GenerationClient
from setbuilder.repositories.set_builder_repository import SetBuilderRepository, SqlSetBuilderRepository
from setbuilder.repositories.source_repository import SourceRepository, SqlSourceRepository
from setbuilder.repositories.trivia_repository import SqlTriviaRepository, TriviaRepository
from setbuilder.services.source_batch import Generator
from setbuilder.services.task_manager import TaskManager

INVALID_CRON_SECRET_DETAIL = "Invalid or missing cron secret"


def get_trivia_repository() -> TriviaRepository:
    return SqlTriviaRepository()


def get_set_builder_repository() -> SetBuilderRepository:
    return SqlSetBuilderRepository()


def get_source_repository() -> SourceRepository:
    return SqlSourceRepository()


def get_task_manager() -> TaskManager:
    return TaskManager()


async def get_generator() -> AsyncGenerator[Generator, None]:
    """Yield a generation client that is closed once the request finishes."""
    async with GenerationClient() as client:
        yield client


async def verify_cron_secret(
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject batch triggers without the shared secret, when one is configured."""
    expected = settings.cron_secret
    if not expected:
        return
    if x_cron_secret is None or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CRON_SECRET_DETAIL,
        )


# Type aliases for dependency injection
TriviaRepo = Annotated[TriviaRepository, Depends(get_trivia_repository)]
SetBuilderRepo = Annotated[SetBuilderRepository, Depends(get_set_builder_repository)]
SourceRepo = Annotated[SourceRepository, Depends(get_source_repository)]
Tasks = Annotated[TaskManager, Depends(get_task_manager)]
GenerationService = Annotated[Generator, Depends(get_generator)]
CronAuthorized = Annotated[None, Depends(verify_cron_secret)]
