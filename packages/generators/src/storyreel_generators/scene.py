"""Scene title, detail and entity generation from source documents."""

import logging
from typing import Optional, Sequence, Type

from storyreel_core_schemas import (
    EntityKind,
    EntityRecord,
    RecoveryLevel,
    SceneDetailRecord,
    SceneFields,
    SceneRecord,
)
from storyreel_gemini_client import GeminiClient

from .parsing import ParsedRecords, T, parse_records
from .templates import render
from .templates.scene import DETAILS_PROMPT, DETECTION_PROMPT, REGENERATE_PROMPT, TITLES_PROMPT

logger = logging.getLogger(__name__)

# Generation limits: (max output tokens, max source characters)
TITLE_BATCH_MAX_TOKENS = 8000
TITLE_BATCH_SOURCE_CHARS = 8000
DETAIL_BATCH_MAX_TOKENS = 8000
DETAIL_BATCH_SOURCE_CHARS = 3000
DETECTION_MAX_TOKENS = 4000
DETECTION_SOURCE_CHARS = 8000
REGENERATE_MAX_TOKENS = 4000
REGENERATE_SOURCE_CHARS = 2000

GENERATION_TEMPERATURE = 0.7


SCENE_BREAKDOWN_PROMPT = """You are a script supervisor breaking screenplays and treatments down into production scenes.

## OUTPUT RULES (CRITICAL)
- Respond with JSON only: no prose before or after, no markdown fences
- Use double-quoted keys and string values
- scene_number is always a string ("1", "2", "3")
- Never invent characters or locations that the source text does not support

## FIELD CONVENTIONS
- name: brief and descriptive, 2-5 words
- location: where the scene takes place, as the script names it
- characters: names exactly as written in the source
- shot_type: one of "Interior Daytime", "Interior Night", "Exterior Daytime", "Exterior Night"
- mood: one or two words ("Tense", "Comedic", "Dramatic", "Action-packed")
- notes: production details worth flagging (props, stunts, effects)
"""


def truncate_source(text: str, limit: int) -> str:
    """Cut source text to a character budget, marking the cut with '...'."""
    text = text or ""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class SceneGenerator:
    """Generates scene records from source documents."""

    def __init__(self, client: Optional[GeminiClient] = None):
        """Initialize the scene generator.

        Args:
            client: Gemini client (uses global client if not provided)
        """
        if client is None:
            from storyreel_gemini_client import get_client

            client = get_client()
        self.client = client

    # ---------------- prompts ----------------

    def build_titles_prompt(self, source_text: str, expected_count: Optional[int] = None) -> str:
        """Build the prompt for a scene title batch without calling the API."""
        return render(
            TITLES_PROMPT,
            source=truncate_source(source_text, TITLE_BATCH_SOURCE_CHARS),
            expected_count=expected_count,
        )

    def build_details_prompt(self, scenes: Sequence[SceneFields], source_text: str) -> str:
        """Build the prompt for a detail batch scoped to the given scenes."""
        return render(
            DETAILS_PROMPT,
            source=truncate_source(source_text, DETAIL_BATCH_SOURCE_CHARS),
            scenes=scenes,
        )

    def build_detection_prompt(self, kind: EntityKind, source_text: str) -> str:
        """Build the prompt for detecting character or location names."""
        return render(
            DETECTION_PROMPT,
            source=truncate_source(source_text, DETECTION_SOURCE_CHARS),
            plural="characters" if kind == EntityKind.CHARACTER else "locations",
        )

    def build_regenerate_prompt(
        self,
        scene: SceneFields,
        source_text: str,
        feedback: Optional[str] = None,
    ) -> str:
        """Build the prompt for regenerating the details of a single scene."""
        return render(
            REGENERATE_PROMPT,
            source=truncate_source(source_text, REGENERATE_SOURCE_CHARS),
            scene=scene,
            feedback=feedback,
        )

    # ---------------- generation ----------------

    async def generate(self, prompt: str, size_limit: int, overwrite_cache: bool = False) -> str:
        """Send a prompt to the text backend.

        Args:
            prompt: Full prompt text
            size_limit: Maximum output tokens
            overwrite_cache: Bypass the response cache

        Returns:
            Raw generated text
        """
        return await self.client.generate_text(
            prompt=prompt,
            system_instruction=SCENE_BREAKDOWN_PROMPT,
            temperature=GENERATION_TEMPERATURE,
            max_tokens=size_limit,
            overwrite_cache=overwrite_cache,
        )

    def read(
        self,
        text: str,
        model: Type[T],
        prompt: str,
        size_limit: int,
        expected_count: Optional[int] = None,
    ) -> ParsedRecords[T]:
        """Parse a reply, evicting it from the cache unless it parsed completely.

        A failed or truncated reply must not be replayed when the caller retries.
        """
        parsed = parse_records(text, model, expected_count)
        if parsed.recovery != RecoveryLevel.FULL:
            self.client.forget(
                prompt=prompt,
                system_instruction=SCENE_BREAKDOWN_PROMPT,
                temperature=GENERATION_TEMPERATURE,
                max_tokens=size_limit,
            )
            logger.debug("Evicted %s reply from the response cache", parsed.recovery.value)
        return parsed

    async def generate_titles(
        self,
        source_text: str,
        expected_count: Optional[int] = None,
        overwrite_cache: bool = False,
    ) -> ParsedRecords[SceneRecord]:
        """Generate a batch of scene titles from a source document."""
        prompt = self.build_titles_prompt(source_text, expected_count)
        text = await self.generate(prompt, TITLE_BATCH_MAX_TOKENS, overwrite_cache=overwrite_cache)
        return self.read(text, SceneRecord, prompt, TITLE_BATCH_MAX_TOKENS, expected_count)

    async def generate_details(
        self,
        scenes: Sequence[SceneFields],
        source_text: str,
        overwrite_cache: bool = False,
    ) -> ParsedRecords[SceneDetailRecord]:
        """Generate details for the given scenes, matched back by scene number."""
        prompt = self.build_details_prompt(scenes, source_text)
        text = await self.generate(prompt, DETAIL_BATCH_MAX_TOKENS, overwrite_cache=overwrite_cache)
        return self.read(text, SceneDetailRecord, prompt, DETAIL_BATCH_MAX_TOKENS, len(scenes))

    async def detect_entities(
        self,
        kind: EntityKind,
        source_text: str,
        overwrite_cache: bool = False,
    ) -> ParsedRecords[EntityRecord]:
        """Detect character or location names in a source document."""
        prompt = self.build_detection_prompt(kind, source_text)
        text = await self.generate(prompt, DETECTION_MAX_TOKENS, overwrite_cache=overwrite_cache)
        return self.read(text, EntityRecord, prompt, DETECTION_MAX_TOKENS)

    async def regenerate_scene(
        self,
        scene: SceneFields,
        source_text: str,
        feedback: Optional[str] = None,
    ) -> ParsedRecords[SceneDetailRecord]:
        """Regenerate the details of one scene. Always bypasses the cache."""
        prompt = self.build_regenerate_prompt(scene, source_text, feedback)
        text = await self.generate(prompt, REGENERATE_MAX_TOKENS, overwrite_cache=True)
        return parse_records(text, SceneDetailRecord, 1)
