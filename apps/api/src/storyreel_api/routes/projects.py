"""Project routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from storyreel_core_schemas import Character, EntityKind, Location, Project
from storyreel_services import WorkspaceService
from storyreel_api.deps import get_workspace_service, verify_token
from storyreel_api.schemas import (
    CreateEntityRequest,
    CreateProjectRequest,
    ErrorResponse,
    ListResponse,
    UpdateRosterRequest,
)

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("", response_model=ListResponse[Project])
async def list_projects(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """List all projects."""
    projects = service.list_projects()
    return ListResponse(data=projects, total=len(projects))


@router.post(
    "",
    response_model=Project,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_project(
    request: CreateProjectRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Create a movie project."""
    return service.create_project(request.name, request.roles_available)


@router.get("/{project_id}", response_model=Project, responses={404: {"model": ErrorResponse}})
async def get_project(
    project_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Get project details."""
    return service.get_project(project_id)


@router.put("/{project_id}/roster", response_model=Project, responses={404: {"model": ErrorResponse}})
async def update_roster(
    project_id: str,
    request: UpdateRosterRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Replace the casting roster."""
    return service.set_roster(project_id, request.roles_available)


@router.post(
    "/{project_id}/characters",
    response_model=Character,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_character(
    project_id: str,
    request: CreateEntityRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Create a durable character record."""
    return service.add_entity(project_id, EntityKind.CHARACTER, request.name)


@router.post(
    "/{project_id}/locations",
    response_model=Location,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_location(
    project_id: str,
    request: CreateEntityRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Create a durable location record."""
    return service.add_entity(project_id, EntityKind.LOCATION, request.name)
