"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from storyreel_core_schemas import SceneDraft
from storyreel_gemini_client import GeminiClient
from storyreel_generators import SceneGenerator
from storyreel_services import SceneSession, WorkspaceService


SAMPLE_SCREENPLAY = """INT. DINER - NIGHT

ALICE wipes the counter. BOB walks in, soaked from the rain.

BOB
Still open?

ALICE
For you, always.

EXT. PARKING LOT - NIGHT

Headlights sweep across the lot. CARLOS steps out of a black sedan.

INT. DINER - CONTINUOUS

Carlos enters. Alice and Bob freeze.
"""


def scenes_json(*records: dict) -> str:
    """Render records the way a well-behaved generator would."""
    return json.dumps(list(records))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def workspace_service(temp_dir) -> WorkspaceService:
    """A freshly created workspace."""
    service = WorkspaceService(temp_dir)
    service.create("Test Workspace")
    return service


@pytest.fixture
def manager(workspace_service):
    return workspace_service.manager


@pytest.fixture
def document(workspace_service):
    """A standalone screenplay (scenes live on the document)."""
    return workspace_service.add_document("Pilot", content=SAMPLE_SCREENPLAY)


@pytest.fixture
def project(workspace_service):
    return workspace_service.create_project("Night Shift", ["Alice", "Bob"])


@pytest.fixture
def linked_document(workspace_service, project):
    """A screenplay linked to a project (scenes live on the project timeline)."""
    return workspace_service.add_document(
        "Night Shift Draft", content=SAMPLE_SCREENPLAY, project_id=project.id
    )


@pytest.fixture
def session(workspace_service, document) -> SceneSession:
    return workspace_service.open_session(document.id)


@pytest.fixture
def linked_session(workspace_service, linked_document) -> SceneSession:
    return workspace_service.open_session(linked_document.id)


@pytest.fixture
def mock_client():
    """Gemini client stand-in; set generate_text.return_value per test."""
    client = MagicMock()
    client.generate_text = AsyncMock(return_value="[]")
    return client


@pytest.fixture
def generator(mock_client) -> SceneGenerator:
    return SceneGenerator(client=mock_client)


def gemini_reply(text, finish_reason="STOP"):
    """A generate_content response carrying one candidate."""
    return MagicMock(candidates=[MagicMock(finish_reason=finish_reason)], text=text)


@pytest.fixture
def gemini_client(monkeypatch):
    """Real GeminiClient with an in-memory cache; the SDK call is mocked."""
    monkeypatch.setattr("storyreel_gemini_client.client.genai.Client", MagicMock())
    client = GeminiClient(api_key="test-key", persist_cache=False)
    client.client.aio.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def add_scenes():
    """Write scenes straight to a session's store.

    Usage: add_scenes(session, {"scene_number": "1", "name": "Opening"}, ...)
    """

    def _add(session: SceneSession, *fields: dict):
        created = []
        existing = session.store.list_scenes(session.container_id)
        for offset, values in enumerate(fields):
            draft = SceneDraft(
                container_id=session.container_id,
                order_index=len(existing) + offset,
                **values,
            )
            created.append(session.store.create(draft))
        return created

    return _add
