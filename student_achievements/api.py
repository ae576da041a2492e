"""
FastAPI application for Student Achievements.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlparse

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

from .achievements.errors import AchievementError
from .achievements.routes import router as achievements_router
from .achievements.routes import students_router
from .config import get_settings
from .db.base import init_database
from .documents.base import close_mongo_client, get_document_repository
from .logging_config import configure_logging

# Initialize structured logging
logger = structlog.get_logger()

settings = get_settings()


def _upload_directory() -> Path:
    """Local directory behind the file:// upload store."""
    parsed = urlparse(settings.upload_storage_uri)
    raw_path = f"{parsed.netloc}{parsed.path}" if parsed.netloc else parsed.path
    return Path(raw_path)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    configure_logging()
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        environment=settings.environment,
    )

    try:
        await init_database()
    except Exception as e:
        logger.error("application_start_failed", error=str(e))
        raise

    try:
        get_document_repository().ensure_indexes()
    except PyMongoError as e:
        # The API still serves relational reads; document calls fail per request
        logger.error("document_store_unavailable", error=str(e))

    yield

    # Shutdown
    close_mongo_client()
    logger.info("application_stopped")


app = FastAPI(
    title=settings.app_name,
    description="Achievement reporting and advisor verification for students",
    version=importlib.metadata.version("student-achievements"),
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AchievementError)
async def achievement_error_handler(request: Request, exc: AchievementError) -> JSONResponse:
    """Render workflow failures in the response envelope."""
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code)
    body = {"status": "error", "message": exc.message}
    if exc.errors is not None:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are a 400 in the same envelope."""
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "message": "Invalid request data",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


app.include_router(achievements_router)
app.include_router(students_router)

_upload_dir = _upload_directory()
_upload_dir.mkdir(parents=True, exist_ok=True)
app.mount(
    settings.upload_url_prefix,
    StaticFiles(directory=str(_upload_dir)),
    name="uploads",
)


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok"}


# Health and Info Endpoints
@app.get("/healthz")
def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": importlib.metadata.version("student-achievements")}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
