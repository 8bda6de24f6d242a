"""Workspace management service: projects, documents and sessions."""

import logging
from pathlib import Path
from typing import Optional

from storyreel_core_schemas import (
    Character,
    Document,
    DocumentKind,
    EntityKind,
    Location,
    Project,
    dedupe_names,
    is_blank,
    name_key,
)
from storyreel_storage import StorageError, WorkspaceManager

from .exceptions import NotFoundError, ServiceError, ValidationError
from .session import BusyFlags, SceneSession

logger = logging.getLogger(__name__)


class WorkspaceService:
    """Service for workspace management operations."""

    def __init__(self, base_path: Optional[Path] = None):
        """Initialize service.

        Args:
            base_path: Workspace directory. If None, uses current directory.
        """
        self.base_path = Path(base_path) if base_path else Path.cwd()
        self._manager: Optional[WorkspaceManager] = None
        self.busy = BusyFlags()

    @property
    def manager(self) -> WorkspaceManager:
        """Get the workspace manager, loading if necessary."""
        if self._manager is None:
            self._manager = self.load()
        return self._manager

    def exists(self, path: Optional[Path] = None) -> bool:
        """Check if a workspace exists at the given path."""
        return WorkspaceManager.exists(path or self.base_path)

    def create(self, name: Optional[str] = None, path: Optional[Path] = None) -> WorkspaceManager:
        """Create a new workspace.

        Raises:
            ValidationError: If a workspace already exists at the path
        """
        target = path or self.base_path
        if WorkspaceManager.exists(target):
            raise ValidationError(f"A workspace already exists in {target}", field="path")

        self._manager = WorkspaceManager.create(target, name)
        return self._manager

    def load(self, path: Optional[Path] = None) -> WorkspaceManager:
        """Load an existing workspace.

        Raises:
            NotFoundError: If no workspace exists at path
        """
        target = path or self.base_path
        if not WorkspaceManager.exists(target):
            raise NotFoundError("Workspace", str(target))

        self._manager = WorkspaceManager.load(target)
        return self._manager

    def _save(self) -> None:
        try:
            self.manager.save()
        except StorageError as e:
            raise ServiceError(str(e), code="STORAGE_ERROR") from e

    # ---------------- projects ----------------

    def list_projects(self) -> list[Project]:
        return list(self.manager.workspace.projects)

    def get_project(self, project_id: str) -> Project:
        """Get project by ID.

        Raises:
            NotFoundError: If project not found
        """
        project = self.manager.workspace.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def create_project(self, name: str, roles_available: Optional[list[str]] = None) -> Project:
        """Create a movie project.

        Raises:
            ValidationError: If the name is blank or already used
        """
        if is_blank(name):
            raise ValidationError("Project name is required", field="name")

        project = Project(name=name.strip(), roles_available=dedupe_names(roles_available or []))
        if self.manager.workspace.get_project(project.id):
            raise ValidationError(f"Project '{project.id}' already exists", field="name")

        self.manager.workspace.projects.append(project)
        self._save()
        logger.info("Created project %s", project.id)
        return project

    def set_roster(self, project_id: str, roles: list[str]) -> Project:
        """Replace the casting roster of a project."""
        project = self.get_project(project_id)
        project.roles_available = dedupe_names(roles)
        self._save()
        return project

    # ---------------- documents ----------------

    def list_documents(self) -> list[Document]:
        return list(self.manager.workspace.documents)

    def get_document(self, document_id: str) -> Document:
        """Get document by ID.

        Raises:
            NotFoundError: If document not found
        """
        document = self.manager.workspace.get_document(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    def add_document(
        self,
        title: str,
        content: str = "",
        kind: DocumentKind = DocumentKind.SCREENPLAY,
        project_id: Optional[str] = None,
    ) -> Document:
        """Add a source document, optionally linked to a project.

        Raises:
            ValidationError: If the title is blank or already used
            NotFoundError: If the project does not exist
        """
        if is_blank(title):
            raise ValidationError("Document title is required", field="title")
        if project_id:
            self.get_project(project_id)

        document = Document(title=title.strip(), content=content, kind=kind, project_id=project_id)
        if self.manager.workspace.get_document(document.id):
            raise ValidationError(f"Document '{document.id}' already exists", field="title")

        self.manager.workspace.documents.append(document)
        self._save()
        logger.info("Added %s %s", kind.value, document.id)
        return document

    def update_document(self, document_id: str, content: str) -> Document:
        """Replace the text of a document."""
        document = self.get_document(document_id)
        document.content = content
        self._save()
        return document

    def link_document(self, document_id: str, project_id: Optional[str]) -> Document:
        """Link a document to a project, or unlink it with None.

        Scenes already written stay in the container they were created in;
        sessions opened afterwards use the new container.
        """
        document = self.get_document(document_id)
        if project_id:
            self.get_project(project_id)
        document.project_id = project_id
        self._save()
        return document

    # ---------------- durable entities ----------------

    def add_entity(self, project_id: str, kind: EntityKind, name: str):
        """Create a durable character or location record for a project.

        Adding a name that already exists returns the existing record.
        """
        self.get_project(project_id)
        if is_blank(name):
            raise ValidationError("Name is required", field="name")

        workspace = self.manager.workspace
        records = workspace.characters if kind == EntityKind.CHARACTER else workspace.locations
        for record in records:
            if record.project_id == project_id and name_key(record.name) == name_key(name):
                return record

        model = Character if kind == EntityKind.CHARACTER else Location
        record = model(project_id=project_id, name=name.strip())
        records.append(record)
        self._save()
        return record

    # ---------------- sessions ----------------

    def open_session(self, document_id: str) -> SceneSession:
        """Open an editing session on a document.

        Sessions opened here share one set of busy flags, so an operation on a
        project timeline blocks the same operation from any linked document.
        """
        return SceneSession(self.manager, self.get_document(document_id), busy=self.busy)
