"""Scene routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from storyreel_core_schemas import Scene, ScenePatch
from storyreel_services import (
    BulkCreateResult,
    ClearResult,
    DetailService,
    FillResult,
    ReorderResult,
    SceneService,
    ValidationError,
)
from storyreel_api.deps import get_detail_service, get_scene_service, verify_token
from storyreel_api.schemas import (
    ErrorResponse,
    FillDetailsRequest,
    GenerateScenesRequest,
    ListResponse,
    MoveSceneRequest,
    RegenerateSceneRequest,
    UpdateSceneRequest,
)

router = APIRouter(prefix="/documents/{document_id}/scenes", tags=["Scenes"])

GENERATION_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


@router.get("", response_model=ListResponse[Scene], responses={404: {"model": ErrorResponse}})
async def list_scenes(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """List scenes in display order."""
    scenes = service.list_scenes()
    return ListResponse(data=scenes, total=len(scenes))


@router.post(
    "",
    response_model=Scene,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
)
async def add_scene(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Append an empty scene with the next scene number."""
    return service.add_empty()


@router.delete("", response_model=ClearResult, responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}})
async def clear_scenes(
    token: Annotated[Optional[str], Depends(verify_token)],
    confirm: bool = Query(False, description="Must be true to delete every scene"),
    service: SceneService = Depends(get_scene_service),
):
    """Delete every scene.

    Scenes that fail to delete are reported and left in place.
    """
    if not confirm:
        raise ValidationError("Clearing all scenes requires confirm=true", field="confirm")
    return service.clear_all()


@router.post("/generate", response_model=BulkCreateResult, responses=GENERATION_ERRORS)
async def generate_scenes(
    request: GenerateScenesRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Generate scene titles from the document and add the new ones."""
    return await service.generate_scenes(
        source_text=request.source_text,
        expected_count=request.expected_count,
    )


@router.post("/details", response_model=FillResult, responses=GENERATION_ERRORS)
async def fill_details(
    request: FillDetailsRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: DetailService = Depends(get_detail_service),
):
    """Fill empty details of incomplete scenes. Safe to repeat."""
    return await service.fill_gaps(source_text=request.source_text)


@router.get("/{scene_id}", response_model=Scene, responses={404: {"model": ErrorResponse}})
async def get_scene(
    scene_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Get scene details."""
    return service.get_scene(scene_id)


@router.patch("/{scene_id}", response_model=Scene, responses={404: {"model": ErrorResponse}})
async def update_scene(
    scene_id: str,
    request: UpdateSceneRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Edit a scene."""
    patch = ScenePatch.model_validate(request.model_dump(exclude_none=True))
    return service.update_scene(scene_id, patch)


@router.delete(
    "/{scene_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_scene(
    scene_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Delete a scene."""
    service.delete_scene(scene_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{scene_id}/move",
    response_model=ReorderResult,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def move_scene(
    scene_id: str,
    request: MoveSceneRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: SceneService = Depends(get_scene_service),
):
    """Move a scene one position up or down and renumber all scenes."""
    return service.reorder(scene_id, request.direction)


@router.post("/{scene_id}/regenerate", response_model=Scene, responses=GENERATION_ERRORS)
async def regenerate_scene(
    scene_id: str,
    request: RegenerateSceneRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: DetailService = Depends(get_detail_service),
):
    """Regenerate one scene's details, optionally guided by feedback."""
    return await service.regenerate_scene(
        scene_id,
        source_text=request.source_text,
        feedback=request.feedback,
    )
