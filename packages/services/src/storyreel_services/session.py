"""Editing session state: store selection, busy flags and active container."""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from storyreel_core_schemas import DetectionState, Document, EntityKind, Project
from storyreel_storage import SceneStore, WorkspaceManager, select_scene_store

from .exceptions import BusyError, NotFoundError

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Operations that are guarded per container."""

    REORDER = "reorder"
    GENERATION = "generation"
    CLEAR = "clear"
    DETECTION = "detection"


class BusyFlags:
    """Per-container, per-operation in-flight markers.

    A second request for an operation that is already running on the same
    container is rejected with BusyError rather than queued.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._held: set[tuple[str, str]] = set()

    def acquire(self, operation: Operation, container_id: str) -> bool:
        """Mark an operation as running. Returns False if it already was."""
        key = (operation.value, container_id)
        with self._lock:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, operation: Operation, container_id: str) -> None:
        with self._lock:
            self._held.discard((operation.value, container_id))

    def is_busy(self, operation: Operation, container_id: str) -> bool:
        with self._lock:
            return (operation.value, container_id) in self._held

    @contextmanager
    def hold(self, operation: Operation, container_id: str) -> Iterator[None]:
        """Run a block with the flag held.

        Raises:
            BusyError: If the operation is already running on the container
        """
        if not self.acquire(operation, container_id):
            logger.warning("Rejected concurrent %s on %s", operation.value, container_id)
            raise BusyError(operation.value, container_id)
        try:
            yield
        finally:
            self.release(operation, container_id)


@dataclass
class DetectionStatus:
    """Detection state of one entity kind in one container."""

    state: DetectionState = DetectionState.NOT_STARTED
    names: list[str] = field(default_factory=list)
    error: Optional[str] = None


class SceneSession:
    """One editing session over the scenes of a document.

    The scene store is chosen once, when the session opens, from whether the
    document is linked to a project. Generation results that arrive after the
    user has moved to another container are discarded by the services.
    """

    def __init__(
        self,
        manager: WorkspaceManager,
        document: Document,
        busy: Optional[BusyFlags] = None,
    ):
        self.manager = manager
        self.document = document
        self.store: SceneStore = select_scene_store(manager, document)
        self.container_id = self.store.container_for(document)
        self.active_container_id: Optional[str] = self.container_id
        # Shared by every session of a workspace, since documents can share a container
        self.busy = busy if busy is not None else BusyFlags()
        self._detection: dict[tuple[str, EntityKind], DetectionStatus] = {}
        self._detection_lock = threading.Lock()
        logger.debug(
            "Opened session on %s (%s store, container %s)",
            document.id, self.store.kind.value, self.container_id,
        )

    @classmethod
    def open(
        cls,
        manager: WorkspaceManager,
        document_id: str,
        busy: Optional[BusyFlags] = None,
    ) -> "SceneSession":
        """Open a session on a document.

        Raises:
            NotFoundError: If the document does not exist
        """
        document = manager.workspace.get_document(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return cls(manager, document, busy)

    @property
    def project(self) -> Optional[Project]:
        """Project the document is linked to, if any."""
        if not self.document.project_id:
            return None
        return self.manager.workspace.get_project(self.document.project_id)

    @property
    def source_text(self) -> str:
        return self.document.content

    # ---------------- active container ----------------

    def focus(self, container_id: Optional[str]) -> None:
        """Make another container (or none) the active one."""
        self.active_container_id = container_id

    def is_active(self, container_id: str) -> bool:
        return self.active_container_id == container_id

    # ---------------- detection state ----------------

    def detection(self, container_id: str, kind: EntityKind) -> DetectionStatus:
        """Current detection status (a copy)."""
        with self._detection_lock:
            status = self._detection.get((container_id, kind), DetectionStatus())
            return DetectionStatus(status.state, list(status.names), status.error)

    def begin_detection(self, container_id: str, kind: EntityKind) -> None:
        """Move detection to Running.

        Raises:
            BusyError: If a detection of this kind is already running
        """
        with self._detection_lock:
            status = self._detection.setdefault((container_id, kind), DetectionStatus())
            if status.state == DetectionState.RUNNING:
                raise BusyError(f"{kind.value} {Operation.DETECTION.value}", container_id)
            status.state = DetectionState.RUNNING
            status.error = None

    def finish_detection(
        self,
        container_id: str,
        kind: EntityKind,
        names: Optional[list[str]] = None,
        error: Optional[str] = None,
    ) -> None:
        """Move detection to Done (names given) or Failed (error given)."""
        with self._detection_lock:
            status = self._detection.setdefault((container_id, kind), DetectionStatus())
            if error is not None:
                status.state = DetectionState.FAILED
                status.error = error
            else:
                status.state = DetectionState.DONE
                status.names = list(names or [])

    def reset_detection(self, container_id: str, kind: EntityKind) -> None:
        """Forget a detection, as if it never ran."""
        with self._detection_lock:
            self._detection.pop((container_id, kind), None)
