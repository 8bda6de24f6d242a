"""StoryReel API application."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storyreel_generators import SceneGenerator
from storyreel_services import setup_logging
from storyreel_services.exceptions import (
    BusyError,
    GenerationError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from storyreel_storage import StorageError
from .deps import registry, settings
from .routes import (
    documents_router,
    entities_router,
    projects_router,
    scenes_router,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, **extra}},
    )


def create_app(
    workspace_dir: Optional[Path] = None,
    require_auth: bool = False,
    api_keys: Optional[set[str]] = None,
    generator: Optional[SceneGenerator] = None,
    log_level: Optional[str] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        workspace_dir: Directory holding workspace.json
        require_auth: Whether to require authentication
        api_keys: Set of valid API keys
        generator: Scene generator to use (defaults to Gemini on first use)
        log_level: Log level (defaults to STORYREEL_LOG_LEVEL or INFO)

    Returns:
        FastAPI application
    """
    if workspace_dir:
        settings.workspace_dir = Path(workspace_dir)
    if require_auth:
        settings.require_auth = require_auth
    if api_keys:
        settings.api_keys = api_keys
    if generator is not None:
        settings.generator = generator
    if log_level:
        settings.log_level = log_level

    setup_logging(settings.log_level)
    registry.reset()

    app = FastAPI(
        title="StoryReel API",
        description="""
Scene breakdown for screenplays and treatments.

## Workflow

1. Add a document (`POST /documents`), optionally linked to a project
2. Generate scene titles (`POST /documents/{id}/scenes/generate`)
3. Fill in scene details (`POST /documents/{id}/scenes/details`), repeat until complete
4. Detect characters (`POST /documents/{id}/entities/characters/detect`)
5. Distribute them into scenes (`POST /documents/{id}/entities/characters/distribute`)

## Containers

Scenes of a project-linked document live on the project timeline; scenes of a
standalone document live on the document itself.

## Concurrency

A second reorder, clear or generation request for the same container while
one is running is rejected with `409 BUSY`.
""",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc.code, exc.message)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(400, exc.code, exc.message, field=exc.field)

    @app.exception_handler(BusyError)
    async def busy_handler(request: Request, exc: BusyError):
        return _error(409, exc.code, exc.message)

    @app.exception_handler(GenerationError)
    async def generation_handler(request: Request, exc: GenerationError):
        logger.error("Generation failed: %s", exc.message)
        return _error(502, exc.code, exc.message, details=exc.details)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return _error(500, exc.code, exc.message)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage error: %s", exc)
        return _error(500, "STORAGE_ERROR", str(exc))

    # Register routers
    app.include_router(projects_router)
    app.include_router(documents_router)
    app.include_router(scenes_router)
    app.include_router(entities_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
