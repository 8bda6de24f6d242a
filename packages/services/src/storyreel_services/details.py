"""Detail-gap filling: complete scenes that only have titles."""

import logging
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from storyreel_core_schemas import (
    RecoveryLevel,
    Scene,
    SceneDetailRecord,
    ScenePatch,
    dedupe_names,
    is_blank,
)
from storyreel_generators import SceneGenerator
from storyreel_storage import SceneNotFoundError, StorageError

from .exceptions import GenerationError, NotFoundError, ResponseFormatError, ValidationError
from .scenes import require_scene
from .session import Operation, SceneSession

logger = logging.getLogger(__name__)

# Fields a detail record can fill
DETAIL_FIELDS = ("description", "location", "characters", "shot_type", "mood", "notes")


class FillResult(BaseModel):
    """Outcome of a detail-gap fill run.

    Counts only include writes that were actually applied.
    """

    filled: list[str] = Field(default_factory=list)  # scene ids
    skipped: list[str] = Field(default_factory=list)  # no match, or nothing left to fill
    already_complete: int = 0
    failed: list[str] = Field(default_factory=list)  # scene ids not written
    recovery: RecoveryLevel = RecoveryLevel.FULL
    discarded: bool = False

    @property
    def needs_another_run(self) -> bool:
        return bool(self.skipped or self.failed)


def _record_value(record: SceneDetailRecord, field: str):
    value = getattr(record, field)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return dedupe_names(value)
    return value


class DetailService:
    """Service that fills missing scene details from generated text."""

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
    def is_incomplete(scene: Scene) -> bool:
        """A scene is complete once it has a description, a location and a character.

        Values mirrored into metadata count as present.
        """
        metadata = scene.metadata
        description = scene.description or metadata.get("description")
        location = scene.location or metadata.get("location")
        characters = scene.characters or metadata.get("characters")
        return is_blank(description) or is_blank(location) or is_blank(characters)

    @staticmethod
    def merge_details(scene: Scene, record: SceneDetailRecord) -> ScenePatch:
        """Fill-only-if-empty merge of a detail record into a scene.

        A field is written only when the record carries a non-blank value and
        the scene's current value is blank.
        """
        patch = ScenePatch()
        for field in DETAIL_FIELDS:
            value = _record_value(record, field)
            if is_blank(value) or not is_blank(getattr(scene, field)):
                continue
            setattr(patch, field, value)
        return patch

    async def fill_gaps(
        self,
        container_id: Optional[str] = None,
        scenes: Optional[Sequence[Scene]] = None,
        source_text: Optional[str] = None,
    ) -> FillResult:
        """Request details for incomplete scenes and fill their empty fields.

        Scenes are matched to records by scene number and re-read right before
        merging, so edits made while waiting for the response are kept.
        Running it again only touches what is still missing.

        Raises:
            ValidationError: If there is no source text
            BusyError: If a generation is already running on the container
            GenerationError: If the backend call fails
            ResponseFormatError: If no record could be parsed from the response
        """
        container_id = container_id or self.session.container_id
        if scenes is None:
            scenes = self.store.list_scenes(container_id)

        incomplete = [s for s in scenes if self.is_incomplete(s)]
        result = FillResult(already_complete=len(scenes) - len(incomplete))
        if not incomplete:
            logger.info("All %d scene(s) in %s already have details", len(scenes), container_id)
            return result

        source = self.session.source_text if source_text is None else source_text
        if is_blank(source):
            raise ValidationError("Source document is empty", field="source_text")

        with self.session.busy.hold(Operation.GENERATION, container_id):
            try:
                parsed = await self.generator.generate_details(incomplete, source)
            except Exception as e:
                raise GenerationError(f"Detail generation failed: {e}") from e

            if parsed.failed:
                raise ResponseFormatError(
                    "Could not read any scene details from the generated response",
                    details={"tier": parsed.tier.value, "dropped": parsed.dropped},
                )
            result.recovery = parsed.recovery

            if not self.session.is_active(container_id):
                logger.info("Discarding generated details: %s is no longer active", container_id)
                result.discarded = True
                return result

            by_number: dict[str, SceneDetailRecord] = {}
            for record in parsed.records:
                number = (record.scene_number or "").strip()
                if number and number not in by_number:
                    by_number[number] = record

            current = {s.id: s for s in self.store.list_scenes(container_id)}
            for stale in incomplete:
                scene = current.get(stale.id)
                record = by_number.get(scene.scene_number.strip()) if scene else None
                if scene is None or record is None:
                    result.skipped.append(stale.id)
                    continue

                patch = self.merge_details(scene, record)
                if patch.is_empty():
                    result.skipped.append(scene.id)
                    continue

                try:
                    self.store.update(scene.id, patch)
                except StorageError as e:
                    logger.error("Failed to fill details for scene %s: %s", scene.id, e)
                    result.failed.append(scene.id)
                    continue
                result.filled.append(scene.id)

        logger.info(
            "Filled %d scene(s), skipped %d, %d already complete, %d failed",
            len(result.filled), len(result.skipped), result.already_complete, len(result.failed),
        )
        if result.needs_another_run:
            logger.info("Some scenes still lack details; run again to fill the rest")
        return result

    async def regenerate_scene(
        self,
        scene_id: str,
        source_text: Optional[str] = None,
        feedback: Optional[str] = None,
    ) -> Scene:
        """Regenerate the details of one scene.

        Generated non-blank values overwrite the current ones; the scene
        number, name and position are kept.

        Raises:
            NotFoundError: If scene not found
            BusyError: If a generation is already running on the container
            GenerationError: If the backend call fails
            ResponseFormatError: If the response could not be parsed
        """
        scene = require_scene(self.session, scene_id)
        source = self.session.source_text if source_text is None else source_text

        with self.session.busy.hold(Operation.GENERATION, scene.container_id):
            try:
                parsed = await self.generator.regenerate_scene(scene, source or "", feedback)
            except Exception as e:
                raise GenerationError(f"Scene regeneration failed: {e}") from e

            if parsed.failed or not parsed.records:
                raise ResponseFormatError(
                    "Could not read the regenerated scene from the response",
                    details={"tier": parsed.tier.value},
                )

            if not self.session.is_active(scene.container_id):
                logger.info("Discarding regenerated scene %s: container no longer active", scene_id)
                return scene

            record = parsed.records[0]
            patch = ScenePatch()
            for field in DETAIL_FIELDS:
                value = _record_value(record, field)
                if not is_blank(value):
                    setattr(patch, field, value)

            if patch.is_empty():
                logger.warning("Regeneration of scene %s returned no usable fields", scene_id)
                return scene

            try:
                updated = self.store.update(scene_id, patch)
            except SceneNotFoundError:
                raise NotFoundError("Scene", scene_id) from None
            logger.info("Regenerated scene %s", scene_id)
            return updated
