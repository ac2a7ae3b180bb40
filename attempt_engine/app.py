# FILE: attempt_engine/app.py
"""
FastAPI application entry point for the timed assessment attempt engine
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attempt_engine.config import get_settings
from attempt_engine.middleware.session import SessionMiddleware
from attempt_engine.routes import attempts, health, leaderboard
from attempt_engine.services.telemetry import init_telemetry

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting attempt engine v0.1.0 (storage={settings.storage_backend})")

    init_telemetry()

    yield

    logger.info("Shutting down attempt engine")


app = FastAPI(
    title="Timed Assessment Attempt Engine",
    description="Timed exams, case studies and inquiry activities: attempts, timers, scoring, leaderboards",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session
app.add_middleware(SessionMiddleware, header_name=settings.session_header)


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "code": "internal_error", "message": "Internal server error"}
    )


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(attempts.router, prefix="/attempts", tags=["attempts"])
app.include_router(leaderboard.router, prefix="/leaderboard", tags=["leaderboard"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Timed Assessment Attempt Engine",
        "version": "0.1.0",
        "status": "active"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "attempt_engine.app:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.environment == "development"
    )
