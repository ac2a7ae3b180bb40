# FILE: attempt_engine/dependencies.py
"""
FastAPI dependencies: the shared engine, the caller's session and result mapping
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from attempt_engine.config import get_settings
from attempt_engine.errors import (
    OPERATION_FAILED,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    OperationResult,
    StateError,
    ValidationError,
)
from attempt_engine.services.activity_store import ActivityStore
from attempt_engine.services.attempt_store import JsonlAttemptRepository
from attempt_engine.services.engine import AttemptEngine
from attempt_engine.services.memory_store import InMemoryActivityCatalog, InMemoryAttemptRepository

logger = logging.getLogger(__name__)

HTTP_STATUS = {
    AuthenticationError.code: 401,
    AuthorizationError.code: 403,
    NotFoundError.code: 404,
    StateError.code: 409,
    ValidationError.code: 422,
    OPERATION_FAILED: 500,
}


@lru_cache()
def get_engine() -> AttemptEngine:
    """Engine wired to the configured storage backend"""
    settings = get_settings()

    if settings.storage_backend == "memory":
        catalog = InMemoryActivityCatalog()
        logger.info("Attempt engine using in-memory storage")
        return AttemptEngine(InMemoryAttemptRepository(), catalog, catalog)

    if settings.storage_backend != "json":
        logger.warning(f"Unknown STORAGE_BACKEND={settings.storage_backend}; using json")

    activities = ActivityStore(settings.activities_dir)
    logger.info(f"Attempt engine using JSONL storage under {settings.data_dir}")
    return AttemptEngine(JsonlAttemptRepository(settings.attempts_dir), activities, activities)


def get_user_id(request: Request) -> Optional[str]:
    """Caller's user id as resolved by SessionMiddleware"""
    return getattr(request.state, "user_id", None)


def to_response(result: OperationResult) -> JSONResponse:
    """Engine result -> HTTP response with the matching status code"""
    if result.success:
        return JSONResponse(status_code=200, content=result.to_dict())
    return JSONResponse(
        status_code=HTTP_STATUS.get(result.error_code, 400),
        content=result.to_dict(),
    )
