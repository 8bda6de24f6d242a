"""Scene stores over the two backing containers.

A document that belongs to a project keeps its scenes on the project's
timeline; a standalone document keeps them directly. Callers pick the store
once with ``select_scene_store`` and only talk to the ``SceneStore`` interface.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable

from storyreel_core_schemas import (
    ContainerKind,
    Document,
    Scene,
    SceneDraft,
    ScenePatch,
    SceneStatus,
    Timeline,
    TimelineScene,
)

from .storage import SceneNotFoundError, StorageError, WorkspaceManager

logger = logging.getLogger(__name__)

# Scene attribute -> timeline metadata key
METADATA_KEYS = {
    "scene_number": "sceneNumber",
    "location": "location",
    "characters": "characters",
    "shot_type": "shotType",
    "mood": "mood",
    "notes": "notes",
    "status": "status",
}


class SceneStore(ABC):
    """Uniform list/create/update/delete over one kind of scene container.

    Every write persists a single record.
    """

    kind: ContainerKind

    def __init__(self, manager: WorkspaceManager):
        self.manager = manager

    @property
    def workspace(self):
        return self.manager.workspace

    @abstractmethod
    def container_for(self, document: Document) -> str:
        """Container id that holds the scenes of a document."""
        ...

    @abstractmethod
    def list_scenes(self, container_id: str) -> list[Scene]:
        """Scenes of a container in display order."""
        ...

    @abstractmethod
    def get(self, scene_id: str) -> Scene:
        """Get one scene by id."""
        ...

    @abstractmethod
    def create(self, draft: SceneDraft) -> Scene:
        """Persist a new scene."""
        ...

    @abstractmethod
    def update(self, scene_id: str, patch: ScenePatch) -> Scene:
        """Apply a partial update and persist it."""
        ...

    @abstractmethod
    def delete(self, scene_id: str) -> None:
        """Delete one scene."""
        ...

    def _persist(self, rollback: Callable[[], None]) -> None:
        """Save the workspace, undoing the in-memory change if that fails."""
        try:
            self.manager.save()
        except StorageError:
            rollback()
            raise


class DocumentSceneStore(SceneStore):
    """Scenes stored directly against a standalone document."""

    kind = ContainerKind.DOCUMENT

    def container_for(self, document: Document) -> str:
        return document.id

    def list_scenes(self, container_id: str) -> list[Scene]:
        scenes = [s for s in self.workspace.document_scenes if s.container_id == container_id]
        scenes.sort(key=lambda s: s.order_index)
        return [s.model_copy(deep=True) for s in scenes]

    def _find(self, scene_id: str) -> Scene:
        for scene in self.workspace.document_scenes:
            if scene.id == scene_id:
                return scene
        raise SceneNotFoundError(scene_id)

    def get(self, scene_id: str) -> Scene:
        return self._find(scene_id).model_copy(deep=True)

    def create(self, draft: SceneDraft) -> Scene:
        if self.workspace.get_document(draft.container_id) is None:
            raise StorageError(f"Document not found: {draft.container_id}")

        scene = Scene(container_kind=self.kind, **draft.model_dump())
        scenes = self.workspace.document_scenes
        scenes.append(scene)
        self._persist(lambda: scenes.remove(scene))
        return scene.model_copy(deep=True)

    def update(self, scene_id: str, patch: ScenePatch) -> Scene:
        scene = self._find(scene_id)
        before = scene.model_copy(deep=True)

        for field, value in patch.changes().items():
            setattr(scene, field, value)
        scene.updated_at = datetime.now()

        def rollback() -> None:
            for field in type(before).model_fields:
                setattr(scene, field, getattr(before, field))

        self._persist(rollback)
        return scene.model_copy(deep=True)

    def delete(self, scene_id: str) -> None:
        scene = self._find(scene_id)
        scenes = self.workspace.document_scenes
        index = scenes.index(scene)
        scenes.pop(index)
        self._persist(lambda: scenes.insert(index, scene))


class TimelineSceneStore(SceneStore):
    """Scenes stored on a project's timeline.

    The container id is the project id. The timeline is created on the
    first write. Attributes beyond name/description live in row metadata.
    """

    kind = ContainerKind.TIMELINE

    def container_for(self, document: Document) -> str:
        if not document.project_id:
            raise StorageError(f"Document {document.id} is not linked to a project")
        return document.project_id

    def list_scenes(self, container_id: str) -> list[Scene]:
        timeline = self.workspace.get_timeline_for_project(container_id)
        if timeline is None:
            return []
        rows = [r for r in self.workspace.timeline_scenes if r.timeline_id == timeline.id]
        rows.sort(key=lambda r: r.order_index)
        return [self._to_scene(row, container_id) for row in rows]

    def _find(self, scene_id: str) -> TimelineScene:
        for row in self.workspace.timeline_scenes:
            if row.id == scene_id:
                return row
        raise SceneNotFoundError(scene_id)

    def _project_for(self, row: TimelineScene) -> str:
        for timeline in self.workspace.timelines:
            if timeline.id == row.timeline_id:
                return timeline.project_id
        raise StorageError(f"Timeline not found: {row.timeline_id}")

    def get(self, scene_id: str) -> Scene:
        row = self._find(scene_id)
        return self._to_scene(row, self._project_for(row))

    def create(self, draft: SceneDraft) -> Scene:
        project = self.workspace.get_project(draft.container_id)
        if project is None:
            raise StorageError(f"Project not found: {draft.container_id}")

        timeline = self.workspace.get_timeline_for_project(project.id)
        created_timeline = timeline is None
        if timeline is None:
            timeline = Timeline(project_id=project.id, name=f"{project.name} Timeline")
            self.workspace.timelines.append(timeline)
            logger.info("Created timeline for project %s", project.id)

        row = TimelineScene(
            timeline_id=timeline.id,
            name=draft.name,
            description=draft.description,
            order_index=draft.order_index,
            start_time_seconds=draft.start_time_seconds,
            duration_seconds=draft.duration_seconds,
            metadata=self._to_metadata(draft.model_dump()),
        )
        rows = self.workspace.timeline_scenes
        rows.append(row)

        def rollback() -> None:
            rows.remove(row)
            if created_timeline:
                self.workspace.timelines.remove(timeline)

        self._persist(rollback)
        return self._to_scene(row, project.id)

    def update(self, scene_id: str, patch: ScenePatch) -> Scene:
        row = self._find(scene_id)
        before = row.model_copy(deep=True)
        changes = patch.changes()

        for field in ("name", "order_index"):
            if field in changes:
                setattr(row, field, changes[field])
        if "description" in changes:
            row.description = changes["description"]
            if "description" in row.metadata:
                row.metadata["description"] = changes["description"]
        row.metadata.update(self._to_metadata(changes))
        row.updated_at = datetime.now()

        def rollback() -> None:
            for field in type(before).model_fields:
                setattr(row, field, getattr(before, field))

        self._persist(rollback)
        return self._to_scene(row, self._project_for(row))

    def delete(self, scene_id: str) -> None:
        row = self._find(scene_id)
        rows = self.workspace.timeline_scenes
        index = rows.index(row)
        rows.pop(index)
        self._persist(lambda: rows.insert(index, row))

    @staticmethod
    def _to_metadata(values: dict[str, Any]) -> dict[str, Any]:
        metadata = {}
        for field, key in METADATA_KEYS.items():
            if field not in values:
                continue
            value = values[field]
            if isinstance(value, SceneStatus):
                value = value.value
            elif isinstance(value, list):
                value = list(value)
            metadata[key] = value
        return metadata

    def _to_scene(self, row: TimelineScene, project_id: str) -> Scene:
        metadata = row.metadata
        try:
            status = SceneStatus(metadata.get("status") or SceneStatus.PLANNING)
        except ValueError:
            logger.warning("Unknown status %r on scene %s", metadata.get("status"), row.id)
            status = SceneStatus.PLANNING

        return Scene(
            id=row.id,
            container_kind=self.kind,
            container_id=project_id,
            name=row.name,
            # Older rows mirror the description into metadata
            description=metadata.get("description") or row.description,
            scene_number=metadata.get("sceneNumber") or "",
            location=metadata.get("location") or "",
            characters=metadata.get("characters") or [],
            shot_type=metadata.get("shotType") or "",
            mood=metadata.get("mood") or "",
            notes=metadata.get("notes") or "",
            status=status,
            order_index=row.order_index,
            start_time_seconds=row.start_time_seconds,
            duration_seconds=row.duration_seconds,
            metadata=dict(metadata),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


def select_scene_store(manager: WorkspaceManager, document: Document) -> SceneStore:
    """Pick the store for a document: timeline if project-linked, else document."""
    if document.project_id:
        return TimelineSceneStore(manager)
    return DocumentSceneStore(manager)
