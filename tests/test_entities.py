"""
Tests for Entity Service

Tests for storyreel_services/entities.py
"""

from unittest.mock import patch

import pytest

from storyreel_core_schemas import DetectionState, EntityKind
from storyreel_generators import SceneGenerator
from storyreel_services import BusyError, EntityService, GenerationError, ResponseFormatError

from conftest import gemini_reply


CHARACTERS_RESPONSE = '{"characters": [{"name": "Alice"}, {"name": "Bob"}, {"name": "Carlos"}]}'


class TestDistribute:
    """Spreading character names over scenes."""

    def test_chunks_over_scenes(self, session, add_scenes):
        add_scenes(session, {"scene_number": "1"}, {"scene_number": "2"})
        service = EntityService(session)

        result = service.distribute(None, ["A", "B", "C", "D", "E"])

        scenes = service.store.list_scenes(session.container_id)
        assert [s.characters for s in scenes] == [["A", "B", "C"], ["D", "E"]]
        assert len(result.updated) == 2

    def test_more_scenes_than_names(self, session, add_scenes):
        add_scenes(session, {"scene_number": "1"}, {"scene_number": "2"}, {"scene_number": "3"})
        service = EntityService(session)

        result = service.distribute(None, ["Alice", "Bob"])

        scenes = service.store.list_scenes(session.container_id)
        assert [s.characters for s in scenes] == [["Alice"], ["Bob"], []]
        assert result.unchanged == 1

    def test_merges_with_existing_names(self, session, add_scenes):
        add_scenes(session, {"scene_number": "1", "characters": ["Bob"]})
        service = EntityService(session)

        service.distribute(None, ["Alice", "alice ", "BOB"])

        (scene,) = service.store.list_scenes(session.container_id)
        assert scene.characters == ["Bob", "Alice"]

    def test_unchanged_scenes_are_not_written(self, session, add_scenes):
        add_scenes(session, {"scene_number": "1", "characters": ["Alice", "Bob"]})
        service = EntityService(session)

        with patch.object(session.store, "update", wraps=session.store.update) as update:
            result = service.distribute(None, ["alice", "Bob"])

        update.assert_not_called()
        assert result.unchanged == 1

    def test_empty_container_gets_one_scene(self, session):
        service = EntityService(session)

        result = service.distribute(None, ["Alice", "Bob"])

        (scene,) = result.created
        assert scene.name == "Scene 1"
        assert scene.scene_number == "1"
        assert scene.characters == ["Alice", "Bob"]

    def test_no_names_is_noop(self, session, add_scenes):
        add_scenes(session, {"scene_number": "1"})
        result = EntityService(session).distribute(None, ["", "  "])

        assert result.updated == [] and result.created == []


class TestDetect:
    """Detection state machine."""

    @pytest.mark.asyncio
    async def test_detects_names(self, session, generator, mock_client):
        mock_client.generate_text.return_value = CHARACTERS_RESPONSE
        service = EntityService(session, generator=generator)

        result = await service.detect(EntityKind.CHARACTER)

        assert result.names == ["Alice", "Bob", "Carlos"]
        assert result.state == DetectionState.DONE
        assert service.detected_names(EntityKind.CHARACTER) == ["Alice", "Bob", "Carlos"]
        prompt = mock_client.generate_text.await_args.kwargs["prompt"]
        assert '"characters"' in prompt

    @pytest.mark.asyncio
    async def test_done_is_cached_until_forced(self, session, generator, mock_client):
        mock_client.generate_text.return_value = CHARACTERS_RESPONSE
        service = EntityService(session, generator=generator)

        await service.detect(EntityKind.CHARACTER)
        cached = await service.detect(EntityKind.CHARACTER)

        assert cached.cached
        assert mock_client.generate_text.await_count == 1

        mock_client.generate_text.return_value = '{"characters": [{"name": "Dana"}]}'
        forced = await service.detect(EntityKind.CHARACTER, force=True)

        assert forced.names == ["Dana"]
        assert mock_client.generate_text.await_count == 2

    @pytest.mark.asyncio
    async def test_kinds_are_independent(self, session, generator, mock_client):
        mock_client.generate_text.return_value = CHARACTERS_RESPONSE
        service = EntityService(session, generator=generator)
        await service.detect(EntityKind.CHARACTER)

        assert session.detection(session.container_id, EntityKind.LOCATION).state == DetectionState.NOT_STARTED

    @pytest.mark.asyncio
    async def test_failure_then_retry(self, session, generator, mock_client):
        mock_client.generate_text.side_effect = RuntimeError("timeout")
        service = EntityService(session, generator=generator)

        with pytest.raises(GenerationError):
            await service.detect(EntityKind.CHARACTER)

        status = session.detection(session.container_id, EntityKind.CHARACTER)
        assert status.state == DetectionState.FAILED
        assert "timeout" in status.error

        mock_client.generate_text.side_effect = None
        mock_client.generate_text.return_value = CHARACTERS_RESPONSE
        result = await service.detect(EntityKind.CHARACTER)
        assert result.state == DetectionState.DONE

    @pytest.mark.asyncio
    async def test_unreadable_response_fails(self, session, generator, mock_client):
        mock_client.generate_text.return_value = "I could not find anyone."

        with pytest.raises(ResponseFormatError):
            await EntityService(session, generator=generator).detect(EntityKind.LOCATION)
        assert session.detection(session.container_id, EntityKind.LOCATION).state == DetectionState.FAILED

    @pytest.mark.asyncio
    async def test_retry_after_unreadable_reply_reaches_backend(self, session, gemini_client):
        models = gemini_client.client.aio.models
        models.generate_content.side_effect = [
            gemini_reply("sorry, I cannot help"),
            gemini_reply('[{"name": "Alice"}]'),
        ]
        service = EntityService(session, generator=SceneGenerator(client=gemini_client))

        with pytest.raises(ResponseFormatError):
            await service.detect(EntityKind.CHARACTER)
        assert session.detection(session.container_id, EntityKind.CHARACTER).state == DetectionState.FAILED

        result = await service.detect(EntityKind.CHARACTER)

        assert result.names == ["Alice"]
        assert result.state == DetectionState.DONE
        assert models.generate_content.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_detection_is_done(self, session, generator, mock_client):
        mock_client.generate_text.return_value = '{"characters": []}'

        result = await EntityService(session, generator=generator).detect(EntityKind.CHARACTER)

        assert result.names == []
        assert result.state == DetectionState.DONE

    @pytest.mark.asyncio
    async def test_running_detection_rejected(self, session, generator, mock_client):
        session.begin_detection(session.container_id, EntityKind.CHARACTER)

        with pytest.raises(BusyError):
            await EntityService(session, generator=generator).detect(EntityKind.CHARACTER)
        mock_client.generate_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_discarded_after_focus_change(self, session, generator, mock_client):
        async def respond(**kwargs):
            session.focus(None)
            return CHARACTERS_RESPONSE

        mock_client.generate_text.side_effect = respond
        result = await EntityService(session, generator=generator).detect(EntityKind.CHARACTER)

        assert result.discarded
        assert session.detection(session.container_id, EntityKind.CHARACTER).state == DetectionState.NOT_STARTED


class TestViews:
    """Derived entity lists."""

    def test_counts_and_order(self, session, add_scenes):
        add_scenes(
            session,
            {"characters": ["Bob", "Alice"], "location": "Diner"},
            {"characters": ["alice", "Carlos"], "location": "Parking Lot"},
            {"characters": ["Alice"], "location": "diner "},
        )
        service = EntityService(session)

        characters = service.detected_entities(EntityKind.CHARACTER, detected=["Dana", "bob"])
        assert [(e.name, e.occurrence_count) for e in characters] == [
            ("Alice", 3), ("Bob", 1), ("Carlos", 1), ("Dana", 0),
        ]

        locations = service.detected_entities(EntityKind.LOCATION, detected=[])
        assert [(e.name, e.occurrence_count) for e in locations] == [("Diner", 2), ("Parking Lot", 1)]

    def test_missing_in_roster(self, linked_session, add_scenes):
        add_scenes(linked_session, {"characters": ["alice", "Carlos"]})

        assert EntityService(linked_session).missing_in_roster() == ["Carlos"]

    def test_missing_in_roster_without_project(self, session, add_scenes):
        add_scenes(session, {"characters": ["Alice"]})

        assert EntityService(session).missing_in_roster() == ["Alice"]

    def test_not_yet_durable(self, workspace_service, linked_session, project, add_scenes):
        add_scenes(linked_session, {"characters": ["Alice", "Bob"]})
        workspace_service.add_entity(project.id, EntityKind.CHARACTER, "ALICE")

        pending = EntityService(linked_session).not_yet_durable(EntityKind.CHARACTER, detected=[])

        assert [e.name for e in pending] == ["Bob"]
