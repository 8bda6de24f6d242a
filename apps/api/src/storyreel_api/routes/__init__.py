"""API routes."""

from .projects import router as projects_router
from .documents import router as documents_router
from .scenes import router as scenes_router
from .entities import router as entities_router

__all__ = [
    "projects_router",
    "documents_router",
    "scenes_router",
    "entities_router",
]
