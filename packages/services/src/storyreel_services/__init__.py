"""StoryReel Services - Shared business logic for CLI and API.

Services:
- WorkspaceService: Projects, documents and opening editing sessions
- SceneService: Ordered scene list (bulk create, reorder, add, clear, generate)
- EntityService: Character/location detection and distribution into scenes
- DetailService: Filling missing scene details from generated text
"""

from .details import DetailService, FillResult
from .entities import DetectionResult, DistributionResult, EntityService
from .exceptions import (
    BusyError,
    GenerationError,
    NotFoundError,
    ResponseFormatError,
    ServiceError,
    ValidationError,
)
from .logging_config import setup_logging
from .scenes import BulkCreateResult, ClearResult, ReorderResult, SceneService
from .session import BusyFlags, DetectionStatus, Operation, SceneSession
from .workspace import WorkspaceService

__all__ = [
    # Services
    "WorkspaceService",
    "SceneService",
    "EntityService",
    "DetailService",
    # Session
    "SceneSession",
    "BusyFlags",
    "DetectionStatus",
    "Operation",
    # Results
    "BulkCreateResult",
    "ClearResult",
    "ReorderResult",
    "DetectionResult",
    "DistributionResult",
    "FillResult",
    # Errors
    "ServiceError",
    "NotFoundError",
    "ValidationError",
    "BusyError",
    "GenerationError",
    "ResponseFormatError",
    # Logging
    "setup_logging",
]
