"""API v1 router aggregator."""

from fastapi import APIRouter

from setbuilder.api.v1.generation.routes import router as generation_router
from setbuilder.api.v1.process_builders.routes import router as process_builders_router
from setbuilder.api.v1.set_builder.routes import router as set_builder_router
from setbuilder.api.v1.tasks.routes import router as tasks_router

api_router = APIRouter()

api_router.include_router(set_builder_router, prefix="/set-builder", tags=["Set Builder"])
api_router.include_router(process_builders_router, prefix="/process-builders", tags=["Process Builders"])
api_router.include_router(generation_router, prefix="/generation", tags=["Generation"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
