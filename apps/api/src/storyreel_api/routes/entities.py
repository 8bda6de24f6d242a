"""Detected entity routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from storyreel_core_schemas import EntityKind
from storyreel_services import DetectionResult, DistributionResult, EntityService, ValidationError
from storyreel_api.deps import get_entity_service, verify_token
from storyreel_api.schemas import (
    DetectEntitiesRequest,
    DistributeRequest,
    EntitiesResponse,
    ErrorResponse,
)

router = APIRouter(prefix="/documents/{document_id}/entities", tags=["Entities"])

# URL segment -> entity kind
KINDS = {"characters": EntityKind.CHARACTER, "locations": EntityKind.LOCATION}


def _kind(kind: str) -> EntityKind:
    if kind not in KINDS:
        raise ValidationError(f"Unknown entity kind '{kind}'. Use one of: {', '.join(KINDS)}", field="kind")
    return KINDS[kind]


@router.post(
    "/characters/distribute",
    response_model=DistributionResult,
    responses={404: {"model": ErrorResponse}},
)
async def distribute_characters(
    request: DistributeRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: EntityService = Depends(get_entity_service),
):
    """Merge character names into the scenes.

    Without explicit names, the last character detection is used.
    """
    names = request.names
    if names is None:
        names = service.detected_names(EntityKind.CHARACTER)
    return service.distribute(None, names)


@router.get("/{kind}", response_model=EntitiesResponse, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
async def list_entities(
    kind: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: EntityService = Depends(get_entity_service),
):
    """Names in scenes and detection, with counts and roster gaps."""
    entity_kind = _kind(kind)
    scenes = service.store.list_scenes(service.session.container_id)

    return EntitiesResponse(
        entities=service.detected_entities(entity_kind, scenes=scenes),
        not_yet_durable=service.not_yet_durable(entity_kind, scenes=scenes),
        missing_in_roster=(
            service.missing_in_roster(scenes=scenes) if entity_kind == EntityKind.CHARACTER else []
        ),
    )


@router.post(
    "/{kind}/detect",
    response_model=DetectionResult,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def detect_entities(
    kind: str,
    request: DetectEntitiesRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: EntityService = Depends(get_entity_service),
):
    """Detect character or location names in the document."""
    return await service.detect(_kind(kind), source_text=request.source_text, force=request.force)
