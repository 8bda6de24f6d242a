"""API request/response schemas."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from storyreel_core_schemas import (
    DetectedEntity,
    DocumentKind,
    MoveDirection,
    SceneStatus,
)

T = TypeVar("T")


class ListResponse(BaseModel, Generic[T]):
    """List response wrapper."""

    data: list[T]
    total: int


# Error responses
class ErrorDetail(BaseModel):
    """Error detail."""

    code: str
    message: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: ErrorDetail


# Projects
class CreateProjectRequest(BaseModel):
    """Request to create a project."""

    name: str = Field(..., min_length=1, max_length=200)
    roles_available: list[str] = Field(default_factory=list)


class UpdateRosterRequest(BaseModel):
    """Request to replace a project's casting roster."""

    roles_available: list[str]


class CreateEntityRequest(BaseModel):
    """Request to create a durable character or location record."""

    name: str = Field(..., min_length=1, max_length=200)


# Documents
class CreateDocumentRequest(BaseModel):
    """Request to add a source document."""

    title: str = Field(..., min_length=1, max_length=200)
    content: str = ""
    kind: DocumentKind = DocumentKind.SCREENPLAY
    project_id: Optional[str] = None


class UpdateDocumentRequest(BaseModel):
    """Request to replace a document's text."""

    content: str


class LinkDocumentRequest(BaseModel):
    """Request to link a document to a project (null unlinks)."""

    project_id: Optional[str] = None


# Scenes
class UpdateSceneRequest(BaseModel):
    """Manual scene edit. Omitted fields are left untouched."""

    name: Optional[str] = None
    description: Optional[str] = None
    scene_number: Optional[str] = None
    location: Optional[str] = None
    characters: Optional[list[str]] = None
    shot_type: Optional[str] = None
    mood: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[SceneStatus] = None


class MoveSceneRequest(BaseModel):
    """Request to move a scene one position."""

    direction: MoveDirection


class GenerateScenesRequest(BaseModel):
    """Request to generate scene titles from the document."""

    expected_count: Optional[int] = Field(None, ge=1, le=200)
    source_text: Optional[str] = None  # Defaults to the document text


class FillDetailsRequest(BaseModel):
    """Request to fill missing scene details."""

    source_text: Optional[str] = None


class RegenerateSceneRequest(BaseModel):
    """Request to regenerate one scene's details."""

    feedback: Optional[str] = Field(None, description="Notes to guide the regeneration")
    source_text: Optional[str] = None


# Entities
class DetectEntitiesRequest(BaseModel):
    """Request to detect entity names in the document."""

    force: bool = False
    source_text: Optional[str] = None


class DistributeRequest(BaseModel):
    """Request to merge character names into scenes."""

    names: Optional[list[str]] = Field(
        None, description="Names to distribute (defaults to the last detection)"
    )


class EntitiesResponse(BaseModel):
    """Entity names found in scenes and detection."""

    entities: list[DetectedEntity]
    not_yet_durable: list[DetectedEntity]
    missing_in_roster: list[str] = Field(default_factory=list)
