"""Document routes."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from storyreel_core_schemas import Document
from storyreel_services import WorkspaceService
from storyreel_api.deps import get_workspace_service, registry, verify_token
from storyreel_api.schemas import (
    CreateDocumentRequest,
    ErrorResponse,
    LinkDocumentRequest,
    ListResponse,
    UpdateDocumentRequest,
)

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.get("", response_model=ListResponse[Document])
async def list_documents(
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """List all documents."""
    documents = service.list_documents()
    return ListResponse(data=documents, total=len(documents))


@router.post(
    "",
    response_model=Document,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_document(
    request: CreateDocumentRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Add a screenplay or treatment."""
    return service.add_document(
        title=request.title,
        content=request.content,
        kind=request.kind,
        project_id=request.project_id,
    )


@router.get("/{document_id}", response_model=Document, responses={404: {"model": ErrorResponse}})
async def get_document(
    document_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Get document details."""
    return service.get_document(document_id)


@router.patch("/{document_id}", response_model=Document, responses={404: {"model": ErrorResponse}})
async def update_document(
    document_id: str,
    request: UpdateDocumentRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Replace the document text."""
    return service.update_document(document_id, request.content)


@router.put("/{document_id}/project", response_model=Document, responses={404: {"model": ErrorResponse}})
async def link_document(
    document_id: str,
    request: LinkDocumentRequest,
    token: Annotated[Optional[str], Depends(verify_token)],
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Link the document to a project, or unlink it.

    The next scene request opens a new session on the matching store.
    """
    document = service.link_document(document_id, request.project_id)
    registry.close(document_id)
    return document


@router.post("/{document_id}/focus", responses={404: {"model": ErrorResponse}})
async def focus_document(
    document_id: str,
    token: Annotated[Optional[str], Depends(verify_token)],
):
    """Make this document's scene container the active one.

    Generation results that arrive for other containers are discarded.
    """
    session = registry.focus(document_id)
    return {"document_id": document_id, "container_id": session.container_id}
