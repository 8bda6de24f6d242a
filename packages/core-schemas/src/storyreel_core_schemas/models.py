"""Core data models for StoryReel."""

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug."""
    text = text.lower().strip()
    text = re.sub(r'[^\w\s-]', '', text)  # Remove non-word chars
    text = re.sub(r'[\s_-]+', '_', text)  # Replace spaces/dashes with underscore
    return text[:30]  # Limit length


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


def clean_name(name: Any) -> str:
    """Trim a name and collapse inner whitespace."""
    if not isinstance(name, str):
        return ""
    return " ".join(name.split())


def name_key(name: Any) -> str:
    """Comparison key for names: whitespace and case insensitive."""
    return clean_name(name).casefold()


def merge_names(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    """Union two name lists.

    Entries are trimmed, blanks are dropped and duplicates differing only by
    case or whitespace collapse onto the first-seen spelling. Merging a name
    that is already present is a no-op.
    """
    merged: list[str] = []
    seen: set[str] = set()
    for raw in [*existing, *incoming]:
        name = clean_name(raw)
        key = name.casefold()
        if not name or key in seen:
            continue
        seen.add(key)
        merged.append(name)
    return merged


def dedupe_names(names: Iterable[str]) -> list[str]:
    """Normalize a single name list (trim, drop blanks, case-insensitive dedup)."""
    return merge_names([], names)


def is_blank(value: Any) -> bool:
    """True for None, whitespace-only strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def scene_number_value(scene_number: str) -> Optional[int]:
    """Leading integer of a scene number ("12" -> 12, "3A" -> 3, "" -> None)."""
    match = re.match(r'^\s*(\d+)', scene_number or "")
    if not match:
        return None
    return int(match.group(1))


def _coerce_text(value: Any) -> Any:
    """Accept numbers where the generator was asked for strings."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _coerce_name_list(value: Any) -> Any:
    """Accept "A, B" as well as ["A", "B"] for character lists."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(",")
    if isinstance(value, (list, tuple, set)):
        return dedupe_names(v for v in value if isinstance(v, str))
    return value


class ContainerKind(str, Enum):
    """Backing container for a set of scenes."""

    DOCUMENT = "document"
    TIMELINE = "timeline"


class SceneStatus(str, Enum):
    """Production status of a scene."""

    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class ShotType(str, Enum):
    """Conventional shot types (the field itself stays free-form)."""

    INTERIOR_DAYTIME = "Interior Daytime"
    INTERIOR_NIGHT = "Interior Night"
    EXTERIOR_DAYTIME = "Exterior Daytime"
    EXTERIOR_NIGHT = "Exterior Night"


class DocumentKind(str, Enum):
    """Kind of source document scenes are derived from."""

    SCREENPLAY = "screenplay"
    TREATMENT = "treatment"


class EntityKind(str, Enum):
    """Kind of named entity detected in narrative text."""

    CHARACTER = "character"
    LOCATION = "location"


class RecoveryLevel(str, Enum):
    """How completely a generated response could be parsed."""

    FULL = "full"
    PARTIAL = "partial"
    FAILED = "failed"


class DetectionState(str, Enum):
    """Per-container state of an entity detection call."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"  # retryable


class MoveDirection(str, Enum):
    """Direction of a single-step reorder."""

    UP = "up"
    DOWN = "down"


# === Scenes ===


class SceneFields(BaseModel):
    """Descriptive attributes shared by scenes and scene drafts."""

    name: str = ""
    description: str = ""
    scene_number: str = ""
    location: str = ""
    characters: list[str] = Field(default_factory=list)
    shot_type: str = ""
    mood: str = ""
    notes: str = ""
    status: SceneStatus = SceneStatus.PLANNING

    @field_validator("scene_number", mode="before")
    @classmethod
    def coerce_scene_number(cls, value: Any) -> Any:
        if value is None:
            return ""
        return _coerce_text(value)

    @field_validator("characters", mode="before")
    @classmethod
    def normalize_characters(cls, value: Any) -> Any:
        if value is None:
            return []
        return _coerce_name_list(value)


class SceneDraft(SceneFields):
    """Data for a scene that has not been persisted yet."""

    container_id: str
    order_index: int = 0
    start_time_seconds: float = 0.0
    duration_seconds: float = 60.0


class Scene(SceneFields):
    """An ordered story unit inside a container."""

    id: str = Field(default_factory=new_id)
    container_kind: ContainerKind = ContainerKind.DOCUMENT
    container_id: str = ""
    order_index: int = 0
    start_time_seconds: float = 0.0
    duration_seconds: float = 60.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ScenePatch(BaseModel):
    """Partial update for a scene. Unset fields are left untouched."""

    name: Optional[str] = None
    description: Optional[str] = None
    scene_number: Optional[str] = None
    location: Optional[str] = None
    characters: Optional[list[str]] = None
    shot_type: Optional[str] = None
    mood: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[SceneStatus] = None
    order_index: Optional[int] = None

    @field_validator("scene_number", mode="before")
    @classmethod
    def coerce_scene_number(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator("characters", mode="before")
    @classmethod
    def normalize_characters(cls, value: Any) -> Any:
        return _coerce_name_list(value)

    def changes(self) -> dict[str, Any]:
        """Fields that carry a value."""
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.changes()


# === Generated records ===
# Every field is optional: None means the generator did not send it, which is
# distinct from an explicit empty string.


class GeneratedRecord(BaseModel):
    """Base for records recovered from generated text."""

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def expected_fields(cls) -> list[str]:
        return list(cls.model_fields)


class SceneRecord(GeneratedRecord):
    """A scene title from a title batch."""

    scene_number: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("scene_number", "name", "description", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _coerce_text(value)


class SceneDetailRecord(GeneratedRecord):
    """Full details for one scene from a detail batch."""

    scene_number: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    characters: Optional[list[str]] = None
    shot_type: Optional[str] = None
    mood: Optional[str] = None
    notes: Optional[str] = None

    @field_validator(
        "scene_number", "name", "description", "location", "shot_type", "mood", "notes",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator("characters", mode="before")
    @classmethod
    def normalize_characters(cls, value: Any) -> Any:
        return _coerce_name_list(value)


class EntityRecord(GeneratedRecord):
    """A named entity from a detection call."""

    name: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _coerce_text(value)


class DetectedEntity(BaseModel):
    """A character or location name with its scene occurrence count.

    Derived from the current scenes plus an ephemeral detection list, never
    persisted. A count of 0 means the name was only detected by the model.
    """

    name: str
    occurrence_count: int = 0


# === Workspace ===


class Project(BaseModel):
    """A movie project that may own a timeline."""

    id: str = ""
    name: str
    roles_available: list[str] = Field(default_factory=list)  # Casting roster
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def set_id_from_name(self) -> 'Project':
        """Generate ID from name if not provided."""
        if not self.id:
            self.id = f"proj_{slugify(self.name)}"
        return self


class Document(BaseModel):
    """A source document (screenplay or treatment) scenes are derived from."""

    id: str = ""
    title: str
    kind: DocumentKind = DocumentKind.SCREENPLAY
    content: str = ""
    project_id: Optional[str] = None  # Project link selects the timeline store
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def set_id_from_title(self) -> 'Document':
        """Generate ID from title if not provided."""
        if not self.id:
            self.id = f"doc_{slugify(self.title)}"
        return self


class Timeline(BaseModel):
    """Project-wide ordered timeline."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class TimelineScene(BaseModel):
    """Timeline row; attributes beyond name/description live in metadata."""

    id: str = Field(default_factory=new_id)
    timeline_id: str
    name: str = ""
    description: str = ""
    order_index: int = 0
    start_time_seconds: float = 0.0
    duration_seconds: float = 60.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Character(BaseModel):
    """Durable character record owned by a project."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str


class Location(BaseModel):
    """Durable location record owned by a project."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str


class Workspace(BaseModel):
    """Top-level persisted container for projects, documents and scenes."""

    name: str = "StoryReel Workspace"
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    projects: list[Project] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
    timelines: list[Timeline] = Field(default_factory=list)
    document_scenes: list[Scene] = Field(default_factory=list)
    timeline_scenes: list[TimelineScene] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)

    def get_project(self, project_id: str) -> Optional[Project]:
        """Get project by ID."""
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def get_document(self, document_id: str) -> Optional[Document]:
        """Get document by ID."""
        for doc in self.documents:
            if doc.id == document_id:
                return doc
        return None

    def get_timeline_for_project(self, project_id: str) -> Optional[Timeline]:
        """Get the (oldest) timeline of a project."""
        for timeline in self.timelines:
            if timeline.project_id == project_id:
                return timeline
        return None

    def durable_names(self, project_id: Optional[str], kind: EntityKind) -> list[str]:
        """Names of durable character or location records for a project."""
        if project_id is None:
            return []
        records = self.characters if kind == EntityKind.CHARACTER else self.locations
        return [r.name for r in records if r.project_id == project_id]
