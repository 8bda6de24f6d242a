"""Storage backends for StoryReel workspaces."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from storyreel_core_schemas import Workspace

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A record could not be read or written."""


class SceneNotFoundError(StorageError):
    """No scene with the given id exists in the store."""

    def __init__(self, scene_id: str):
        super().__init__(f"Scene not found: {scene_id}")
        self.scene_id = scene_id


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def save_workspace(self, workspace: Workspace) -> None:
        """Save workspace data."""
        ...

    @abstractmethod
    def load_workspace(self) -> Workspace:
        """Load workspace data."""
        ...

    @abstractmethod
    def workspace_exists(self) -> bool:
        """Check if workspace exists."""
        ...


class JSONStorage(StorageBackend):
    """File-based JSON storage backend."""

    WORKSPACE_FILE = "workspace.json"

    def __init__(self, base_path: Path):
        """Initialize storage with base workspace path.

        Args:
            base_path: Root directory for the workspace
        """
        self.base_path = Path(base_path)
        self.workspace_file = self.base_path / self.WORKSPACE_FILE

    def initialize(self) -> None:
        """Create directory structure for a new workspace."""
        self.base_path.mkdir(parents=True, exist_ok=True)

    def workspace_exists(self) -> bool:
        """Check if workspace file exists."""
        return self.workspace_file.exists()

    def save_workspace(self, workspace: Workspace) -> None:
        """Save workspace to JSON file."""
        workspace.updated_at = datetime.now()

        data = workspace.model_dump(mode="json")

        # Write atomically
        temp_file = self.workspace_file.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        temp_file.replace(self.workspace_file)

    def load_workspace(self) -> Workspace:
        """Load workspace from JSON file."""
        if not self.workspace_exists():
            raise FileNotFoundError(f"Workspace not found at {self.workspace_file}")

        with open(self.workspace_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        return Workspace.model_validate(data)


class WorkspaceManager:
    """High-level workspace management interface."""

    def __init__(self, storage: StorageBackend):
        """Initialize with a storage backend."""
        self.storage = storage
        self._workspace: Optional[Workspace] = None

    @classmethod
    def create(cls, path: Path, name: Optional[str] = None) -> "WorkspaceManager":
        """Create a new workspace.

        Args:
            path: Directory for the workspace
            name: Workspace name

        Returns:
            WorkspaceManager instance
        """
        storage = JSONStorage(path)
        storage.initialize()

        workspace = Workspace(name=name) if name else Workspace()

        manager = cls(storage)
        manager._workspace = workspace
        manager.save()
        logger.info("Created workspace at %s", storage.workspace_file)

        return manager

    @classmethod
    def load(cls, path: Path) -> "WorkspaceManager":
        """Load an existing workspace.

        Args:
            path: Directory containing the workspace

        Returns:
            WorkspaceManager instance
        """
        storage = JSONStorage(path)
        manager = cls(storage)
        manager._workspace = storage.load_workspace()
        return manager

    @classmethod
    def exists(cls, path: Path) -> bool:
        """Check if a workspace exists at path."""
        return JSONStorage(path).workspace_exists()

    @property
    def workspace(self) -> Workspace:
        """Get the current workspace."""
        if self._workspace is None:
            raise RuntimeError("No workspace loaded")
        return self._workspace

    def save(self) -> None:
        """Save the current workspace.

        Raises:
            StorageError: If the workspace file could not be written
        """
        if self._workspace is None:
            raise RuntimeError("No workspace to save")
        try:
            self.storage.save_workspace(self._workspace)
        except OSError as e:
            raise StorageError(f"Could not save workspace: {e}") from e
