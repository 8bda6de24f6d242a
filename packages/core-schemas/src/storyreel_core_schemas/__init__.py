"""Core domain models for StoryReel."""

from storyreel_core_schemas.models import (
    # Enums
    ContainerKind,
    DetectionState,
    DocumentKind,
    EntityKind,
    MoveDirection,
    RecoveryLevel,
    SceneStatus,
    ShotType,
    # Scenes
    Scene,
    SceneDraft,
    SceneFields,
    ScenePatch,
    # Generated records
    DetectedEntity,
    EntityRecord,
    GeneratedRecord,
    SceneDetailRecord,
    SceneRecord,
    # Workspace
    Character,
    Document,
    Location,
    Project,
    Timeline,
    TimelineScene,
    Workspace,
    # Utilities
    clean_name,
    dedupe_names,
    is_blank,
    merge_names,
    name_key,
    new_id,
    scene_number_value,
    slugify,
)

__all__ = [
    # Enums
    "ContainerKind",
    "DetectionState",
    "DocumentKind",
    "EntityKind",
    "MoveDirection",
    "RecoveryLevel",
    "SceneStatus",
    "ShotType",
    # Scenes
    "Scene",
    "SceneDraft",
    "SceneFields",
    "ScenePatch",
    # Generated records
    "DetectedEntity",
    "EntityRecord",
    "GeneratedRecord",
    "SceneDetailRecord",
    "SceneRecord",
    # Workspace
    "Character",
    "Document",
    "Location",
    "Project",
    "Timeline",
    "TimelineScene",
    "Workspace",
    # Utilities
    "clean_name",
    "dedupe_names",
    "is_blank",
    "merge_names",
    "name_key",
    "new_id",
    "scene_number_value",
    "slugify",
]
