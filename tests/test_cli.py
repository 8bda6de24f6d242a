"""
Tests for the Command Line Interface

Tests for storyreel_cli/cli.py
"""

import pytest
from typer.testing import CliRunner

from storyreel_cli.cli import app
from storyreel_storage import WorkspaceManager

from conftest import SAMPLE_SCREENPLAY, scenes_json


runner = CliRunner()


def invoke(workspace, *args, **kwargs):
    return runner.invoke(app, ["--workspace", str(workspace), *args], **kwargs)


def scene_rows(workspace, document_id="doc_pilot"):
    """Scenes of a standalone document as (number, name) in order, read from disk."""
    scenes = [
        s for s in WorkspaceManager.load(workspace).workspace.document_scenes
        if s.container_id == document_id
    ]
    scenes.sort(key=lambda s: s.order_index)
    return [(s.scene_number, s.name) for s in scenes]


@pytest.fixture
def cli_workspace(temp_dir):
    """Initialized workspace with one screenplay loaded from a file."""
    script = temp_dir / "pilot.txt"
    script.write_text(SAMPLE_SCREENPLAY, encoding="utf-8")
    workspace = temp_dir / "ws"

    assert invoke(workspace, "init", "Films").exit_code == 0
    result = invoke(workspace, "document", "add", "Pilot", "--file", str(script))
    assert result.exit_code == 0, result.output
    return workspace


@pytest.fixture
def gemini(monkeypatch, mock_client):
    """Route the default generator to the mocked client."""
    monkeypatch.setattr("storyreel_gemini_client.client._client", mock_client)
    return mock_client


class TestWorkspaceCommands:
    def test_init(self, temp_dir):
        result = invoke(temp_dir, "init", "Films")

        assert result.exit_code == 0
        assert "Workspace created" in result.output
        assert WorkspaceManager.load(temp_dir).workspace.name == "Films"

    def test_init_twice(self, temp_dir):
        invoke(temp_dir, "init")
        result = invoke(temp_dir, "init")

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_missing_workspace(self, temp_dir):
        result = invoke(temp_dir / "nowhere", "scenes", "list", "doc_pilot")

        assert result.exit_code == 1
        assert "No workspace found" in result.output

    def test_bad_log_level(self, temp_dir):
        result = runner.invoke(app, ["--log-level", "LOUD", "--workspace", str(temp_dir), "status"])
        assert result.exit_code == 1

    def test_status(self, cli_workspace):
        result = invoke(cli_workspace, "status")

        assert result.exit_code == 0
        assert "doc_pilot" in result.output


class TestSceneCommands:
    def test_add_and_list(self, cli_workspace):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")
        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        assert scene_rows(cli_workspace) == [("1", ""), ("2", "")]
        result = invoke(cli_workspace, "scenes", "list", "doc_pilot")
        assert result.exit_code == 0

    def test_edit_by_number(self, cli_workspace):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        result = invoke(
            cli_workspace, "scenes", "edit", "doc_pilot", "1",
            "--name", "Opening", "-c", "Alice", "-c", "Bob",
        )

        assert result.exit_code == 0, result.output
        scene = WorkspaceManager.load(cli_workspace).workspace.document_scenes[0]
        assert scene.name == "Opening"
        assert scene.characters == ["Alice", "Bob"]

    def test_move(self, cli_workspace):
        for _ in range(3):
            invoke(cli_workspace, "scenes", "add", "doc_pilot")
        invoke(cli_workspace, "scenes", "edit", "doc_pilot", "3", "--name", "Last")

        result = invoke(cli_workspace, "scenes", "move", "doc_pilot", "3", "up")

        assert result.exit_code == 0, result.output
        assert scene_rows(cli_workspace) == [("0", ""), ("1", "Last"), ("2", "")]

    def test_move_at_top(self, cli_workspace):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        result = invoke(cli_workspace, "scenes", "move", "doc_pilot", "1", "up")

        assert "already at the top" in result.output
        assert scene_rows(cli_workspace) == [("1", "")]

    def test_unknown_scene(self, cli_workspace):
        result = invoke(cli_workspace, "scenes", "delete", "doc_pilot", "42")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_clear_with_confirmation(self, cli_workspace):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        declined = invoke(cli_workspace, "scenes", "clear", "doc_pilot", input="n\n")
        assert declined.exit_code != 0
        assert len(scene_rows(cli_workspace)) == 1

        result = invoke(cli_workspace, "scenes", "clear", "doc_pilot", "--yes")
        assert result.exit_code == 0
        assert scene_rows(cli_workspace) == []


class TestGenerateCommands:
    def test_generate_scenes(self, cli_workspace, gemini):
        gemini.generate_text.return_value = scenes_json(
            {"scene_number": "1", "name": "Closing Time"},
            {"scene_number": "2", "name": "Headlights"},
        )

        result = invoke(cli_workspace, "generate", "scenes", "doc_pilot", "--count", "2")

        assert result.exit_code == 0, result.output
        assert "Created 2 scene(s)" in result.output
        assert scene_rows(cli_workspace) == [("1", "Closing Time"), ("2", "Headlights")]

    def test_generate_unreadable(self, cli_workspace, gemini):
        gemini.generate_text.return_value = "not json at all"

        result = invoke(cli_workspace, "generate", "scenes", "doc_pilot")

        assert result.exit_code == 1
        assert scene_rows(cli_workspace) == []

    def test_generate_details(self, cli_workspace, gemini):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")
        gemini.generate_text.return_value = scenes_json(
            {"scene_number": "1", "description": "Rain.", "location": "Diner", "characters": ["Alice"]}
        )

        result = invoke(cli_workspace, "generate", "details", "doc_pilot")

        assert result.exit_code == 0, result.output
        assert "Filled 1 scene(s)" in result.output
        scene = WorkspaceManager.load(cli_workspace).workspace.document_scenes[0]
        assert scene.location == "Diner"


class TestEntityCommands:
    def test_distribute_given_names(self, cli_workspace):
        invoke(cli_workspace, "scenes", "add", "doc_pilot")
        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        result = invoke(
            cli_workspace, "entities", "distribute", "doc_pilot",
            "-n", "Alice", "-n", "Bob", "-n", "Carlos",
        )

        assert result.exit_code == 0, result.output
        scenes = WorkspaceManager.load(cli_workspace).workspace.document_scenes
        assert [s.characters for s in scenes] == [["Alice", "Bob"], ["Carlos"]]

    def test_distribute_detects_when_no_names(self, cli_workspace, gemini):
        gemini.generate_text.return_value = '{"characters": [{"name": "Alice"}]}'

        result = invoke(cli_workspace, "entities", "distribute", "doc_pilot")

        assert result.exit_code == 0, result.output
        scenes = WorkspaceManager.load(cli_workspace).workspace.document_scenes
        assert [(s.name, s.characters) for s in scenes] == [("Scene 1", ["Alice"])]

    def test_unknown_kind(self, cli_workspace):
        result = invoke(cli_workspace, "entities", "list", "doc_pilot", "--kind", "props")
        assert result.exit_code == 1


class TestProjectCommands:
    def test_link_selects_timeline_store(self, cli_workspace):
        invoke(cli_workspace, "project", "create", "Night Shift", "-r", "Alice")
        result = invoke(cli_workspace, "document", "link", "doc_pilot", "proj_night_shift")
        assert result.exit_code == 0, result.output

        invoke(cli_workspace, "scenes", "add", "doc_pilot")

        workspace = WorkspaceManager.load(cli_workspace).workspace
        assert workspace.document_scenes == []
        assert len(workspace.timeline_scenes) == 1
        assert workspace.get_project("proj_night_shift").roles_available == ["Alice"]
