"""Entity detection and distribution of detected names across scenes."""

import logging
import math
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from storyreel_core_schemas import (
    DetectedEntity,
    DetectionState,
    EntityKind,
    Scene,
    SceneDraft,
    ScenePatch,
    SceneStatus,
    clean_name,
    dedupe_names,
    is_blank,
    merge_names,
    name_key,
)
from storyreel_generators import SceneGenerator
from storyreel_storage import StorageError

from .exceptions import GenerationError, ResponseFormatError, ValidationError
from .session import SceneSession

logger = logging.getLogger(__name__)


class DistributionResult(BaseModel):
    """Outcome of merging detected names into scenes."""

    created: list[Scene] = Field(default_factory=list)
    updated: list[Scene] = Field(default_factory=list)
    unchanged: int = 0
    failed: list[str] = Field(default_factory=list)  # scene ids not written


class DetectionResult(BaseModel):
    """Names returned by an entity detection call."""

    kind: EntityKind
    names: list[str] = Field(default_factory=list)
    state: DetectionState = DetectionState.NOT_STARTED
    cached: bool = False
    discarded: bool = False


class EntityService:
    """Service for detected characters and locations."""

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

    @staticmethod
    def merge_names(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
        """Union two name lists, case-insensitive, keeping first-seen casing."""
        return merge_names(existing, incoming)

    # ---------------- distribution ----------------

    def distribute(
        self,
        container_id: Optional[str],
        detected_names: Sequence[str],
        existing_scenes: Optional[Sequence[Scene]] = None,
    ) -> DistributionResult:
        """Merge detected character names into the scenes of a container.

        With no scenes, a single scene holding every name is created.
        Otherwise the names are split into contiguous chunks of
        ceil(names / scenes) and chunk i is merged into scene i.
        Scenes whose character list would not change are not written.
        """
        container_id = container_id or self.session.container_id
        names = dedupe_names(detected_names)
        result = DistributionResult()
        if not names:
            return result

        scenes = list(existing_scenes) if existing_scenes is not None else self.store.list_scenes(container_id)

        if not scenes:
            draft = SceneDraft(
                container_id=container_id,
                name="Scene 1",
                scene_number="1",
                characters=names,
                status=SceneStatus.PLANNING,
            )
            try:
                result.created.append(self.store.create(draft))
            except StorageError as e:
                logger.error("Failed to create scene for detected characters: %s", e)
                result.failed.append("new")
            return result

        chunk_size = math.ceil(len(names) / len(scenes))
        for i, scene in enumerate(scenes):
            chunk = names[i * chunk_size:(i + 1) * chunk_size]
            merged = merge_names(scene.characters, chunk)
            if merged == scene.characters:
                result.unchanged += 1
                continue
            try:
                result.updated.append(self.store.update(scene.id, ScenePatch(characters=merged)))
            except StorageError as e:
                logger.error("Failed to add characters to scene %s: %s", scene.id, e)
                result.failed.append(scene.id)

        logger.info(
            "Distributed %d name(s) over %d scene(s): %d updated, %d unchanged",
            len(names), len(scenes), len(result.updated), result.unchanged,
        )
        return result

    # ---------------- detection ----------------

    async def detect(
        self,
        kind: EntityKind,
        container_id: Optional[str] = None,
        source_text: Optional[str] = None,
        force: bool = False,
    ) -> DetectionResult:
        """Detect character or location names in the source document.

        A finished detection is returned from the session unless ``force`` is
        set. A failed detection can be retried.

        Raises:
            BusyError: If this detection is already running
            GenerationError: If the backend call fails
            ResponseFormatError: If no name could be parsed from the response
        """
        container_id = container_id or self.session.container_id
        status = self.session.detection(container_id, kind)
        if status.state == DetectionState.DONE and not force:
            return DetectionResult(kind=kind, names=status.names, state=status.state, cached=True)

        source = self.session.source_text if source_text is None else source_text
        if is_blank(source):
            raise ValidationError("Source document is empty", field="source_text")

        self.session.begin_detection(container_id, kind)
        try:
            parsed = await self.generator.detect_entities(kind, source)
        except Exception as e:
            self.session.finish_detection(container_id, kind, error=str(e))
            raise GenerationError(f"{kind.value.title()} detection failed: {e}") from e

        if parsed.failed:
            self.session.finish_detection(container_id, kind, error="unreadable response")
            raise ResponseFormatError(
                f"Could not read any {kind.value} name from the generated response",
                details={"tier": parsed.tier.value},
            )

        if not self.session.is_active(container_id):
            logger.info("Discarding %s detection: %s is no longer active", kind.value, container_id)
            self.session.reset_detection(container_id, kind)
            return DetectionResult(kind=kind, state=DetectionState.NOT_STARTED, discarded=True)

        names = dedupe_names(r.name for r in parsed.records if r.name)
        self.session.finish_detection(container_id, kind, names=names)
        logger.info("Detected %d %s name(s) in %s", len(names), kind.value, container_id)
        return DetectionResult(kind=kind, names=names, state=DetectionState.DONE)

    def detected_names(self, kind: EntityKind, container_id: Optional[str] = None) -> list[str]:
        """Names from the last finished detection, or [] if none."""
        container_id = container_id or self.session.container_id
        status = self.session.detection(container_id, kind)
        if status.state != DetectionState.DONE:
            return []
        return status.names

    # ---------------- views ----------------

    def detected_entities(
        self,
        kind: EntityKind,
        scenes: Optional[Sequence[Scene]] = None,
        detected: Optional[Sequence[str]] = None,
    ) -> list[DetectedEntity]:
        """Names found in scenes and detection, with scene occurrence counts.

        Sorted by count (descending) then name. Detected names that no scene
        mentions have a count of 0.
        """
        if scenes is None:
            scenes = self.store.list_scenes(self.session.container_id)
        if detected is None:
            detected = self.detected_names(kind)

        counts: dict[str, DetectedEntity] = {}
        for scene in scenes:
            if kind == EntityKind.CHARACTER:
                names = dedupe_names(scene.characters)
            else:
                names = [] if is_blank(scene.location) else [clean_name(scene.location)]
            for name in names:
                entity = counts.setdefault(name_key(name), DetectedEntity(name=name))
                entity.occurrence_count += 1

        for name in detected:
            if not is_blank(name):
                counts.setdefault(name_key(name), DetectedEntity(name=clean_name(name)))

        return sorted(counts.values(), key=lambda e: (-e.occurrence_count, e.name.casefold()))

    def missing_in_roster(
        self,
        scenes: Optional[Sequence[Scene]] = None,
        roster: Optional[Sequence[str]] = None,
    ) -> list[str]:
        """Character names present in scenes but absent from the casting roster."""
        if roster is None:
            project = self.session.project
            roster = project.roles_available if project else []
        roster_keys = {name_key(r) for r in roster}

        entities = self.detected_entities(EntityKind.CHARACTER, scenes=scenes, detected=[])
        return [e.name for e in entities if name_key(e.name) not in roster_keys]

    def not_yet_durable(
        self,
        kind: EntityKind,
        scenes: Optional[Sequence[Scene]] = None,
        detected: Optional[Sequence[str]] = None,
        durable_names: Optional[Sequence[str]] = None,
    ) -> list[DetectedEntity]:
        """Detected entities that have no durable character/location record yet."""
        if durable_names is None:
            durable_names = self.session.manager.workspace.durable_names(
                self.session.document.project_id, kind
            )
        durable_keys = {name_key(n) for n in durable_names}

        entities = self.detected_entities(kind, scenes=scenes, detected=detected)
        return [e for e in entities if name_key(e.name) not in durable_keys]
