"""Storage backends for StoryReel."""

from storyreel_storage.scenes import (
    DocumentSceneStore,
    SceneStore,
    TimelineSceneStore,
    select_scene_store,
)
from storyreel_storage.storage import (
    JSONStorage,
    SceneNotFoundError,
    StorageBackend,
    StorageError,
    WorkspaceManager,
)

__all__ = [
    "DocumentSceneStore",
    "JSONStorage",
    "SceneNotFoundError",
    "SceneStore",
    "StorageBackend",
    "StorageError",
    "TimelineSceneStore",
    "WorkspaceManager",
    "select_scene_store",
]
