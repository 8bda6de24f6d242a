"""
Tests for Detail Service

Tests for storyreel_services/details.py
"""

import pytest

from storyreel_core_schemas import Scene, SceneDetailRecord, ScenePatch
from storyreel_services import DetailService, NotFoundError, ResponseFormatError

from conftest import scenes_json


class TestMergeDetails:
    """Fill-only-if-empty merge."""

    def test_fills_empty_fields_only(self):
        scene = Scene(scene_number="1", location="Kitchen")
        record = SceneDetailRecord(scene_number="1", description="Eggs burn.", location="Garage")

        patch = DetailService.merge_details(scene, record)

        assert patch.changes() == {"description": "Eggs burn."}

    def test_blank_record_values_ignored(self):
        scene = Scene(scene_number="1")
        record = SceneDetailRecord(scene_number="1", description="  ", characters=[])

        assert DetailService.merge_details(scene, record).is_empty()

    def test_characters_deduplicated(self):
        scene = Scene(scene_number="1")
        record = SceneDetailRecord(characters=["Alice", "alice", " Bob "])

        assert DetailService.merge_details(scene, record).characters == ["Alice", "Bob"]


class TestIsIncomplete:
    """Which scenes need details."""

    def test_complete_scene(self):
        scene = Scene(description="Rain.", location="Diner", characters=["Alice"])
        assert not DetailService.is_incomplete(scene)

    @pytest.mark.parametrize("missing", ["description", "location", "characters"])
    def test_missing_field(self, missing):
        values = {"description": "Rain.", "location": "Diner", "characters": ["Alice"]}
        values.pop(missing)
        assert DetailService.is_incomplete(Scene(**values))

    def test_metadata_mirror_counts(self):
        scene = Scene(
            location="Diner",
            characters=["Alice"],
            metadata={"description": "Mirrored description."},
        )
        assert not DetailService.is_incomplete(scene)


class TestFillGaps:
    """Requesting and merging details for incomplete scenes."""

    @pytest.fixture
    def titled_scenes(self, session, add_scenes):
        return add_scenes(
            session,
            {"scene_number": "1", "name": "Closing Time"},
            {"scene_number": "2", "name": "Headlights", "location": "Parking Lot"},
            {
                "scene_number": "3",
                "name": "Standoff",
                "description": "Carlos enters.",
                "location": "Diner",
                "characters": ["Carlos"],
            },
        )

    @pytest.mark.asyncio
    async def test_fills_matching_scenes(self, session, generator, mock_client, titled_scenes):
        mock_client.generate_text.return_value = scenes_json(
            {
                "scene_number": "1",
                "description": "Alice wipes the counter.",
                "location": "Diner",
                "characters": ["Alice", "Bob"],
                "shot_type": "Interior Night",
            },
            {
                "scene_number": "2",
                "description": "Carlos pulls in.",
                "location": "Highway",
                "characters": ["Carlos"],
            },
        )
        service = DetailService(session, generator=generator)

        result = await service.fill_gaps()

        assert result.already_complete == 1
        assert sorted(result.filled) == sorted([titled_scenes[0].id, titled_scenes[1].id])
        assert not result.needs_another_run

        first, second, third = session.store.list_scenes(session.container_id)
        assert first.location == "Diner"
        assert first.shot_type == "Interior Night"
        assert second.location == "Parking Lot"
        assert second.description == "Carlos pulls in."
        assert third.description == "Carlos enters."

        prompt = mock_client.generate_text.await_args.kwargs["prompt"]
        assert "Scene 1: Closing Time" in prompt
        assert "Scene 3" not in prompt

    @pytest.mark.asyncio
    async def test_unmatched_scenes_are_skipped(self, session, generator, mock_client, titled_scenes):
        mock_client.generate_text.return_value = scenes_json(
            {"scene_number": "1", "description": "Alice wipes the counter.", "location": "Diner", "characters": ["Alice"]},
            {"scene_number": "9", "description": "Not in the list."},
        )

        result = await DetailService(session, generator=generator).fill_gaps()

        assert result.filled == [titled_scenes[0].id]
        assert result.skipped == [titled_scenes[1].id]
        assert result.needs_another_run

    @pytest.mark.asyncio
    async def test_second_run_only_touches_gaps(self, session, generator, mock_client, titled_scenes):
        mock_client.generate_text.return_value = scenes_json(
            {"scene_number": "1", "description": "Alice wipes the counter.", "location": "Diner", "characters": ["Alice"]},
        )
        service = DetailService(session, generator=generator)
        await service.fill_gaps()

        mock_client.generate_text.return_value = scenes_json(
            {"scene_number": "2", "description": "Carlos pulls in.", "characters": ["Carlos"]},
        )
        result = await service.fill_gaps()

        assert result.already_complete == 2
        assert result.filled == [titled_scenes[1].id]
        prompt = mock_client.generate_text.await_args.kwargs["prompt"]
        assert "Scene 1: Closing Time" not in prompt

    @pytest.mark.asyncio
    async def test_nothing_to_fill(self, session, generator, mock_client, add_scenes):
        add_scenes(session, {"scene_number": "1", "description": "x", "location": "y", "characters": ["z"]})

        result = await DetailService(session, generator=generator).fill_gaps()

        assert result.already_complete == 1
        mock_client.generate_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_edits_made_while_waiting_are_kept(self, session, generator, mock_client, titled_scenes):
        scene = titled_scenes[0]

        async def respond(**kwargs):
            session.store.update(scene.id, ScenePatch(location="Rooftop"))
            return scenes_json({"scene_number": "1", "location": "Diner", "characters": ["Alice"]})

        mock_client.generate_text.side_effect = respond
        await DetailService(session, generator=generator).fill_gaps()

        updated = session.store.get(scene.id)
        assert updated.location == "Rooftop"
        assert updated.characters == ["Alice"]

    @pytest.mark.asyncio
    async def test_first_record_for_a_number_wins(self, session, generator, mock_client, titled_scenes):
        mock_client.generate_text.return_value = scenes_json(
            {"scene_number": "1", "location": "Diner"},
            {"scene_number": "1", "location": "Moon"},
        )

        await DetailService(session, generator=generator).fill_gaps()

        assert session.store.get(titled_scenes[0].id).location == "Diner"

    @pytest.mark.asyncio
    async def test_unreadable_response(self, session, generator, mock_client, titled_scenes):
        mock_client.generate_text.return_value = "Sorry, I can't help with that."

        with pytest.raises(ResponseFormatError):
            await DetailService(session, generator=generator).fill_gaps()


class TestRegenerateScene:
    """Regenerating one scene."""

    @pytest.mark.asyncio
    async def test_overwrites_generated_fields(self, session, generator, mock_client, add_scenes):
        (scene,) = add_scenes(
            session,
            {"scene_number": "1", "name": "Closing Time", "description": "Old.", "location": "Kitchen"},
        )
        mock_client.generate_text.return_value = (
            '{"description": "Alice wipes the counter while the rain hammers the windows.",'
            ' "location": "Diner", "characters": ["Alice"], "mood": ""}'
        )

        updated = await DetailService(session, generator=generator).regenerate_scene(
            scene.id, feedback="More rain."
        )

        assert updated.name == "Closing Time"
        assert updated.scene_number == "1"
        assert updated.location == "Diner"
        assert updated.description.startswith("Alice wipes")
        assert updated.mood == ""

        kwargs = mock_client.generate_text.await_args.kwargs
        assert "More rain." in kwargs["prompt"]
        assert kwargs["overwrite_cache"] is True

    @pytest.mark.asyncio
    async def test_unknown_scene(self, session, generator):
        with pytest.raises(NotFoundError):
            await DetailService(session, generator=generator).regenerate_scene("missing")
