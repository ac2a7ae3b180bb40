# FILE: attempt_engine/routes/health.py
"""
Health check endpoint
"""
import logging
from fastapi import APIRouter

from attempt_engine.config import get_settings
from attempt_engine.services.telemetry import get_telemetry_summary

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Liveness plus storage backend and in-memory telemetry counters"""
    settings = get_settings()
    summary = get_telemetry_summary()

    return {
        "status": "healthy",
        "version": "0.1.0",
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
        "telemetry": {
            "enabled": summary["enabled"],
            "counters": summary["counters_in_memory"],
        },
    }
