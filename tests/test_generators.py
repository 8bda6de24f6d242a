"""
Tests for Scene Generation and the Gemini Client

Tests for storyreel_generators/scene.py and storyreel_gemini_client/client.py
"""

from unittest.mock import MagicMock

import pytest

from storyreel_core_schemas import EntityKind, RecoveryLevel, Scene
from storyreel_gemini_client import GeminiClient, ResponseCache, request_key
from storyreel_generators import SceneGenerator, truncate_source
from storyreel_generators.scene import (
    DETAIL_BATCH_SOURCE_CHARS,
    REGENERATE_MAX_TOKENS,
    SCENE_BREAKDOWN_PROMPT,
    TITLE_BATCH_MAX_TOKENS,
)

from conftest import gemini_reply


class TestTruncateSource:
    def test_short_text_unchanged(self):
        assert truncate_source("INT. DINER", 100) == "INT. DINER"

    def test_long_text_marked(self):
        assert truncate_source("abcdef", 3) == "abc..."

    def test_none(self):
        assert truncate_source(None, 10) == ""


class TestPrompts:
    """Prompt building without API calls."""

    def test_titles_without_count(self, generator):
        prompt = generator.build_titles_prompt("INT. DINER - NIGHT")

        assert "let the content determine the number" in prompt
        assert "exactly" not in prompt
        assert "INT. DINER - NIGHT" in prompt

    def test_details_lists_only_given_scenes(self, generator):
        scenes = [Scene(scene_number="2", name="Headlights"), Scene(scene_number="5", name="Standoff")]

        prompt = generator.build_details_prompt(scenes, "x" * (DETAIL_BATCH_SOURCE_CHARS + 50))

        assert "(2 scenes need details)" in prompt
        assert "Scene 2: Headlights\nScene 5: Standoff" in prompt
        assert "x" * DETAIL_BATCH_SOURCE_CHARS + "..." in prompt

    def test_detection_by_kind(self, generator):
        characters = generator.build_detection_prompt(EntityKind.CHARACTER, "text")
        locations = generator.build_detection_prompt(EntityKind.LOCATION, "text")

        assert '"characters": [' in characters
        assert "casting" in characters
        assert '"locations": [' in locations
        assert "casting" not in locations

    def test_regenerate_marks_missing_fields(self, generator):
        scene = Scene(scene_number="3", name="Standoff", location="Diner", characters=["Alice", "Carlos"])

        prompt = generator.build_regenerate_prompt(scene, "text", feedback="More tension.")

        assert "- Location: Diner" in prompt
        assert "- Characters: Alice, Carlos" in prompt
        assert "- Description: N/A (needs generation)" in prompt
        assert "REVISION NOTES:\nMore tension." in prompt

    def test_regenerate_without_feedback(self, generator):
        prompt = generator.build_regenerate_prompt(Scene(name="Standoff"), "text")

        assert "REVISION NOTES" not in prompt
        assert "- Scene Number: N/A" in prompt


class TestGenerate:
    """Calls to the text backend."""

    @pytest.mark.asyncio
    async def test_titles_call(self, generator, mock_client):
        mock_client.generate_text.return_value = '[{"scene_number": "1", "name": "A"}]'

        parsed = await generator.generate_titles("INT. DINER")

        assert parsed.records[0].name == "A"
        kwargs = mock_client.generate_text.await_args.kwargs
        assert kwargs["system_instruction"] == SCENE_BREAKDOWN_PROMPT
        assert kwargs["max_tokens"] == TITLE_BATCH_MAX_TOKENS
        assert kwargs["overwrite_cache"] is False

    @pytest.mark.asyncio
    async def test_regenerate_bypasses_cache(self, generator, mock_client):
        mock_client.generate_text.return_value = '{"description": "New."}'

        parsed = await generator.regenerate_scene(Scene(name="A"), "text")

        assert parsed.records[0].description == "New."
        kwargs = mock_client.generate_text.await_args.kwargs
        assert kwargs["overwrite_cache"] is True
        assert kwargs["max_tokens"] == REGENERATE_MAX_TOKENS


class TestReplyCaching:
    """Only completely parsed replies stay in the response cache."""

    @pytest.mark.asyncio
    async def test_complete_reply_is_reused(self, gemini_client):
        models = gemini_client.client.aio.models
        models.generate_content.return_value = gemini_reply('[{"scene_number": "1", "name": "A"}]')
        generator = SceneGenerator(client=gemini_client)

        await generator.generate_titles("INT. DINER")
        again = await generator.generate_titles("INT. DINER")

        assert again.records[0].name == "A"
        assert models.generate_content.await_count == 1

    @pytest.mark.asyncio
    async def test_truncated_reply_is_evicted(self, gemini_client):
        models = gemini_client.client.aio.models
        models.generate_content.return_value = gemini_reply(
            '[{"scene_number":"1","name":"A"},{"scene_number":"2","name":"B"'
        )
        generator = SceneGenerator(client=gemini_client)

        parsed = await generator.generate_titles("INT. DINER")

        assert parsed.recovery == RecoveryLevel.PARTIAL
        assert len(gemini_client.cache) == 0
        await generator.generate_titles("INT. DINER")
        assert models.generate_content.await_count == 2

    def test_forget_unknown_request(self, gemini_client):
        assert gemini_client.forget(prompt="never sent") is False


class TestResponseCache:
    def test_evicts_least_recently_used(self):
        cache = ResponseCache(max_size=2)
        cache.put("a", "1")
        cache.put("b", "2")
        cache.get("a")
        cache.put("c", "3")

        assert cache.get("b") is None
        assert cache.get("a") == "1"
        assert len(cache) == 2
        assert (cache.hits, cache.misses) == (2, 1)

    def test_persists_to_disk(self, temp_dir):
        ResponseCache(path=temp_dir / "responses.json").put("k", "v")

        assert ResponseCache(path=temp_dir / "responses.json").get("k") == "v"

    def test_unreadable_file_is_discarded(self, temp_dir):
        (temp_dir / "responses.json").write_text("not json", encoding="utf-8")

        assert len(ResponseCache(path=temp_dir / "responses.json")) == 0

    def test_key_covers_sampling_settings(self):
        base = request_key("m", "prompt", None, 0.7, 100)

        assert base == request_key("m", "prompt", "", 0.7, 100)
        assert base != request_key("m", "prompt", None, 0.7, 200)
        assert base != request_key("other", "prompt", None, 0.7, 100)


class TestGeminiClient:
    @pytest.fixture
    def gemini(self, gemini_client):
        return gemini_client

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
            GeminiClient()

    def test_model_and_cache_from_environment(self, monkeypatch, temp_dir):
        monkeypatch.setattr("storyreel_gemini_client.client.genai.Client", MagicMock())
        monkeypatch.setenv("STORYREEL_MODEL", "gemini-test")
        monkeypatch.setenv("STORYREEL_CACHE_DIR", str(temp_dir))

        client = GeminiClient(api_key="test-key")

        assert client.model == "gemini-test"
        assert client.cache_stats()["path"] == str(temp_dir / "responses.json")

    @pytest.mark.asyncio
    async def test_responses_are_cached(self, gemini):
        gemini.client.aio.models.generate_content.return_value = gemini_reply("[]")

        first = await gemini.generate_text(prompt="p")
        second = await gemini.generate_text(prompt="p")
        await gemini.generate_text(prompt="p", overwrite_cache=True)

        assert first == second == "[]"
        assert gemini.client.aio.models.generate_content.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_response_not_cached(self, gemini):
        gemini.client.aio.models.generate_content.return_value = gemini_reply(None)

        assert await gemini.generate_text(prompt="p") == ""
        await gemini.generate_text(prompt="p")

        assert gemini.client.aio.models.generate_content.await_count == 2

    @pytest.mark.asyncio
    async def test_safety_block(self, gemini):
        gemini.client.aio.models.generate_content.return_value = gemini_reply("", "SAFETY")

        with pytest.raises(RuntimeError, match="safety"):
            await gemini.generate_text(prompt="p")

    @pytest.mark.asyncio
    async def test_no_candidates(self, gemini):
        gemini.client.aio.models.generate_content.return_value = MagicMock(candidates=[])

        with pytest.raises(RuntimeError, match="no candidates"):
            await gemini.generate_text(prompt="p")
