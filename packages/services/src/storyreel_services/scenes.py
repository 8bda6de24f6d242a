"""Scene reconciliation service: bulk creation, reordering and clearing."""

import logging
from typing import Callable, Optional, Sequence

from pydantic import BaseModel, Field

from storyreel_core_schemas import (
    MoveDirection,
    RecoveryLevel,
    Scene,
    SceneDraft,
    ScenePatch,
    SceneRecord,
    SceneStatus,
    is_blank,
    scene_number_value,
)
from storyreel_generators import SceneGenerator
from storyreel_storage import SceneNotFoundError, StorageError

from .exceptions import GenerationError, NotFoundError, ResponseFormatError, ValidationError
from .session import Operation, SceneSession

logger = logging.getLogger(__name__)

DEFAULT_SCENE_DURATION = 60.0

# Callback type aliases for progress reporting
OnSceneCreated = Callable[[Scene], None]
OnSceneDeleted = Callable[[str], None]  # scene id


class BulkCreateResult(BaseModel):
    """Outcome of creating scenes from a batch of generated records."""

    created: list[Scene] = Field(default_factory=list)
    duplicates: list[str] = Field(default_factory=list)  # scene numbers skipped
    failed: list[str] = Field(default_factory=list)  # scene numbers not written
    recovery: RecoveryLevel = RecoveryLevel.FULL
    discarded: bool = False


class ReorderResult(BaseModel):
    """Scenes in their new order after a move."""

    scenes: list[Scene] = Field(default_factory=list)
    moved: bool = False
    failed: list[str] = Field(default_factory=list)  # scene ids not renumbered


class ClearResult(BaseModel):
    """Outcome of deleting every scene of a container."""

    deleted: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


def _next_start(scenes: Sequence[Scene]) -> float:
    """Start offset for a scene appended after the given ones."""
    if not scenes:
        return 0.0
    return max(s.start_time_seconds + s.duration_seconds for s in scenes)


def _next_order(scenes: Sequence[Scene]) -> int:
    if not scenes:
        return 0
    return max(s.order_index for s in scenes) + 1


def require_scene(session: SceneSession, scene_id: str) -> Scene:
    """Get a scene from the session store, raising NotFoundError if missing."""
    try:
        return session.store.get(scene_id)
    except SceneNotFoundError:
        raise NotFoundError("Scene", scene_id) from None


class SceneService:
    """Service for the ordered scene list of a session's container."""

    def __init__(self, session: SceneSession, generator: Optional[SceneGenerator] = None):
        """Initialize service with an editing session."""
        self.session = session
        self._generator = generator

    @property
    def store(self):
        return self.session.store

    @property
    def generator(self) -> SceneGenerator:
        """Lazy-load the scene generator."""
        if self._generator is None:
            self._generator = SceneGenerator()
        return self._generator

    def _container(self, container_id: Optional[str]) -> str:
        return container_id or self.session.container_id

    # ---------------- queries ----------------

    def list_scenes(self, container_id: Optional[str] = None) -> list[Scene]:
        """Scenes of a container in display order."""
        return self.store.list_scenes(self._container(container_id))

    def get_scene(self, scene_id: str) -> Scene:
        """Get scene by ID.

        Raises:
            NotFoundError: If scene not found
        """
        return require_scene(self.session, scene_id)

    # ---------------- single-scene edits ----------------

    def update_scene(self, scene_id: str, patch: ScenePatch) -> Scene:
        """Apply a manual edit to a scene.

        Returns:
            Updated scene
        """
        self.get_scene(scene_id)
        if patch.is_empty():
            return self.get_scene(scene_id)
        try:
            return self.store.update(scene_id, patch)
        except SceneNotFoundError:
            raise NotFoundError("Scene", scene_id) from None

    def delete_scene(self, scene_id: str) -> bool:
        """Delete a single scene.

        Returns:
            True if deleted
        """
        try:
            self.store.delete(scene_id)
        except SceneNotFoundError:
            raise NotFoundError("Scene", scene_id) from None
        logger.info("Deleted scene %s", scene_id)
        return True

    def add_empty(self, container_id: Optional[str] = None) -> Scene:
        """Append one blank scene with the next free scene number."""
        container_id = self._container(container_id)
        scenes = self.store.list_scenes(container_id)

        numbers = [n for n in (scene_number_value(s.scene_number) for s in scenes) if n is not None]
        next_number = max(numbers) + 1 if numbers else 1

        draft = SceneDraft(
            container_id=container_id,
            scene_number=str(next_number),
            status=SceneStatus.PLANNING,
            order_index=_next_order(scenes),
            start_time_seconds=_next_start(scenes),
            duration_seconds=DEFAULT_SCENE_DURATION,
        )
        scene = self.store.create(draft)
        logger.info("Added empty scene %s to %s", scene.scene_number, container_id)
        return scene

    # ---------------- bulk operations ----------------

    def bulk_create(
        self,
        container_id: Optional[str],
        records: Sequence[SceneRecord],
        on_created: Optional[OnSceneCreated] = None,
    ) -> BulkCreateResult:
        """Create scenes from generated title records.

        Records whose scene number already exists in the container (or
        earlier in the batch) are skipped. Records without a number get their
        1-based batch position. Write failures are logged and skipped.
        """
        container_id = self._container(container_id)
        existing = self.store.list_scenes(container_id)
        taken = {s.scene_number.strip() for s in existing if not is_blank(s.scene_number)}

        order = _next_order(existing)
        start = _next_start(existing)
        result = BulkCreateResult()

        for position, record in enumerate(records):
            number = (record.scene_number or "").strip() or str(position + 1)
            if number in taken:
                logger.info("Skipping scene %s: number already exists", number)
                result.duplicates.append(number)
                continue

            draft = SceneDraft(
                container_id=container_id,
                name=(record.name or "").strip() or f"Scene {number}",
                description=(record.description or "").strip(),
                scene_number=number,
                status=SceneStatus.PLANNING,
                order_index=order,
                start_time_seconds=start,
                duration_seconds=DEFAULT_SCENE_DURATION,
            )
            try:
                scene = self.store.create(draft)
            except StorageError as e:
                logger.error("Failed to create scene %s: %s", number, e)
                result.failed.append(number)
                continue

            taken.add(number)
            result.created.append(scene)
            order += 1
            start += DEFAULT_SCENE_DURATION
            if on_created:
                on_created(scene)

        logger.info(
            "Created %d scene(s) in %s (%d duplicate, %d failed)",
            len(result.created), container_id, len(result.duplicates), len(result.failed),
        )
        return result

    def reorder(self, scene_id: str, direction: MoveDirection) -> ReorderResult:
        """Move a scene one position up or down and renumber the container.

        After the move every scene's number is its zero-based position.
        Moving past either end is a no-op.

        Raises:
            NotFoundError: If scene not found
            BusyError: If a reorder is already running on the container
        """
        container_id = self.get_scene(scene_id).container_id

        with self.session.busy.hold(Operation.REORDER, container_id):
            scenes = self.store.list_scenes(container_id)
            index = next(i for i, s in enumerate(scenes) if s.id == scene_id)
            target = index - 1 if direction == MoveDirection.UP else index + 1
            if target < 0 or target >= len(scenes):
                return ReorderResult(scenes=scenes, moved=False)

            scenes[index], scenes[target] = scenes[target], scenes[index]

            result = ReorderResult(moved=True)
            for position, scene in enumerate(scenes):
                patch = ScenePatch()
                if scene.scene_number != str(position):
                    patch.scene_number = str(position)
                if scene.order_index != position:
                    patch.order_index = position
                if patch.is_empty():
                    continue
                try:
                    scenes[position] = self.store.update(scene.id, patch)
                except StorageError as e:
                    # No rollback: scenes written so far keep their new position
                    logger.error("Failed to renumber scene %s: %s", scene.id, e)
                    result.failed.append(scene.id)

            result.scenes = scenes
            return result

    def clear_all(
        self,
        container_id: Optional[str] = None,
        on_deleted: Optional[OnSceneDeleted] = None,
    ) -> ClearResult:
        """Delete every scene of a container, one at a time.

        A failed delete is logged and skipped; scenes already deleted stay
        deleted.

        Raises:
            BusyError: If a clear is already running on the container
        """
        container_id = self._container(container_id)
        with self.session.busy.hold(Operation.CLEAR, container_id):
            result = ClearResult()
            for scene in self.store.list_scenes(container_id):
                try:
                    self.store.delete(scene.id)
                except StorageError as e:
                    logger.error("Failed to delete scene %s: %s", scene.id, e)
                    result.failed.append(scene.id)
                    continue
                result.deleted.append(scene.id)
                if on_deleted:
                    on_deleted(scene.id)

        logger.info(
            "Cleared %d scene(s) from %s (%d failed)",
            len(result.deleted), container_id, len(result.failed),
        )
        return result

    # ---------------- generation ----------------

    async def generate_scenes(
        self,
        container_id: Optional[str] = None,
        source_text: Optional[str] = None,
        expected_count: Optional[int] = None,
        on_created: Optional[OnSceneCreated] = None,
    ) -> BulkCreateResult:
        """Generate scene titles from the source document and create them.

        Raises:
            ValidationError: If there is no source text
            BusyError: If a generation is already running on the container
            GenerationError: If the backend call fails
            ResponseFormatError: If no record could be parsed from the response
        """
        container_id = self._container(container_id)
        source = self.session.source_text if source_text is None else source_text
        if is_blank(source):
            raise ValidationError("Source document is empty", field="source_text")

        with self.session.busy.hold(Operation.GENERATION, container_id):
            try:
                parsed = await self.generator.generate_titles(source, expected_count)
            except Exception as e:
                raise GenerationError(f"Scene generation failed: {e}") from e

            if parsed.failed:
                raise ResponseFormatError(
                    "Could not read any scene from the generated response",
                    details={"tier": parsed.tier.value, "dropped": parsed.dropped},
                )

            if not self.session.is_active(container_id):
                logger.info("Discarding %d generated scene(s): %s is no longer active",
                            len(parsed.records), container_id)
                return BulkCreateResult(recovery=parsed.recovery, discarded=True)

            result = self.bulk_create(container_id, parsed.records, on_created=on_created)
            result.recovery = parsed.recovery
            if parsed.recovery == RecoveryLevel.PARTIAL:
                logger.warning("Generated scene list was incomplete; some scenes may be missing")
            return result
