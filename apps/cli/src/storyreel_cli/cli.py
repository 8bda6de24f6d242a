"""StoryReel CLI - scene breakdown for screenplays and treatments."""

import asyncio
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from storyreel_core_schemas import (
    DocumentKind,
    EntityKind,
    MoveDirection,
    RecoveryLevel,
    Scene,
    ScenePatch,
    SceneStatus,
)
from storyreel_services import (
    DetailService,
    EntityService,
    SceneService,
    ServiceError,
    WorkspaceService,
    setup_logging,
)
from storyreel_storage import StorageError, WorkspaceManager

app = typer.Typer(
    name="storyreel",
    help="Scene breakdown for screenplays and treatments",
    no_args_is_help=True,
)
console = Console()

# Subcommands
project_app = typer.Typer(help="Manage movie projects")
document_app = typer.Typer(help="Manage source documents")
scenes_app = typer.Typer(help="Edit the scene list of a document")
generate_app = typer.Typer(help="Generate scenes and scene details")
entities_app = typer.Typer(help="Detect and distribute characters and locations")
app.add_typer(project_app, name="project")
app.add_typer(document_app, name="document")
app.add_typer(scenes_app, name="scenes")
app.add_typer(generate_app, name="generate")
app.add_typer(entities_app, name="entities")

# Options set by the top-level callback
state: dict[str, Optional[Path]] = {"workspace": None}

KINDS = {"characters": EntityKind.CHARACTER, "locations": EntityKind.LOCATION}


@app.callback()
def main_callback(
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", "-w",
        help="Workspace directory (defaults to $STORYREEL_ROOT, then the current directory)",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
):
    """StoryReel command line."""
    try:
        setup_logging(log_level, rich=True)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    state["workspace"] = workspace


def resolve_workspace_path() -> Path:
    """Workspace directory from --workspace, $STORYREEL_ROOT or the current directory."""
    if state["workspace"] is not None:
        return state["workspace"]
    root = os.environ.get("STORYREEL_ROOT")
    if root:
        return Path(root)
    return Path.cwd()


def load_workspace() -> WorkspaceService:
    """Load the workspace or exit with a hint."""
    path = resolve_workspace_path()
    if not WorkspaceManager.exists(path):
        console.print(f"[red]No workspace found in {path}.[/red]")
        console.print("Run [cyan]storyreel init[/cyan] to create one.")
        raise typer.Exit(1)
    service = WorkspaceService(path)
    service.load()
    return service


@contextmanager
def handle_errors():
    """Print service and storage errors and exit with status 1."""
    try:
        yield
    except ServiceError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    except StorageError as e:
        console.print(f"[red]Storage error: {e}[/red]")
        raise typer.Exit(1)


def run_async(coro):
    """Run an async coroutine.

    Handles both standalone CLI usage and environments with existing event loops
    (Jupyter notebooks, IDEs, etc.) by using nest_asyncio when needed.
    """
    try:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            return asyncio.run(coro)
        else:
            # Event loop already running (Jupyter, IDE, etc.)
            import nest_asyncio
            nest_asyncio.apply()
            return loop.run_until_complete(coro)
    except ValueError as e:
        error_msg = str(e)
        if "GOOGLE_API_KEY" in error_msg:
            console.print("[red]Error: Missing API key[/red]")
            console.print(f"\n{error_msg}")
            console.print("\n[dim]Set your API key with:[/dim]")
            console.print('  export GOOGLE_API_KEY="your-api-key"')
            raise typer.Exit(1)
        raise


def with_spinner(description: str, coro):
    """Run a coroutine behind a spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description, total=None)
        return run_async(coro)


def resolve_scene(service: SceneService, ref: str) -> Scene:
    """Find a scene by id or by scene number."""
    scenes = service.list_scenes()
    for scene in scenes:
        if scene.id == ref:
            return scene
    for scene in scenes:
        if scene.scene_number == ref:
            return scene
    console.print(f"[red]Scene '{ref}' not found.[/red]")
    raise typer.Exit(1)


def parse_kind(kind: str) -> EntityKind:
    if kind not in KINDS:
        console.print(f"[red]Unknown kind '{kind}'. Use: {', '.join(KINDS)}[/red]")
        raise typer.Exit(1)
    return KINDS[kind]


def print_scenes(scenes: list[Scene], title: str) -> None:
    """Render scenes as a table."""
    table = Table(title=title, show_lines=False)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Location")
    table.add_column("Characters")
    table.add_column("Shot")
    table.add_column("Status")
    table.add_column("ID", style="dim")

    for scene in scenes:
        table.add_row(
            scene.scene_number or "-",
            scene.name or "[dim]untitled[/dim]",
            scene.location or "[dim]-[/dim]",
            ", ".join(scene.characters) or "[dim]-[/dim]",
            scene.shot_type or "[dim]-[/dim]",
            scene.status.value,
            scene.id[:8],
        )
    console.print(table)


def recovery_note(recovery: RecoveryLevel) -> None:
    if recovery == RecoveryLevel.PARTIAL:
        console.print("[yellow]The response was cut off or incomplete; some scenes may be missing.[/yellow]")


# =============================================================================
# WORKSPACE
# =============================================================================

@app.command()
def init(
    name: Optional[str] = typer.Argument(None, help="Workspace name"),
    path: Optional[Path] = typer.Option(None, help="Workspace directory (defaults to --workspace or current dir)"),
):
    """Initialize a new StoryReel workspace."""
    target = path or resolve_workspace_path()
    with handle_errors():
        with console.status("Creating workspace..."):
            WorkspaceService(target).create(name)

    console.print(f"[green]Workspace created at {target}[/green]")
    console.print("\nNext steps:")
    console.print('  1. storyreel document add "My Screenplay" --file script.txt')
    console.print("  2. storyreel generate scenes doc_my_screenplay")


@app.command()
def status():
    """Show workspace status."""
    service = load_workspace()
    workspace = service.manager.workspace

    console.print(Panel(
        f"[bold]{workspace.name}[/bold]\n"
        f"Created: {workspace.created_at.strftime('%Y-%m-%d %H:%M')}\n"
        f"Updated: {workspace.updated_at.strftime('%Y-%m-%d %H:%M')}",
        title="Workspace",
        border_style="blue",
    ))

    console.print(f"\n[cyan]Projects:[/cyan] {len(workspace.projects)}")
    for project in workspace.projects:
        console.print(f"  {project.id}: {project.name} ({len(project.roles_available)} roles)")

    console.print(f"\n[cyan]Documents:[/cyan] {len(workspace.documents)}")
    for document in workspace.documents:
        session = service.open_session(document.id)
        count = len(session.store.list_scenes(session.container_id))
        link = f" -> {document.project_id}" if document.project_id else ""
        console.print(f"  {document.id}: {document.title} [{document.kind.value}]{link}, {count} scenes")


# =============================================================================
# PROJECTS
# =============================================================================

@project_app.command("create")
def project_create(
    name: str = typer.Argument(..., help="Project name"),
    role: Optional[list[str]] = typer.Option(None, "--role", "-r", help="Casting role (repeatable)"),
):
    """Create a movie project."""
    service = load_workspace()
    with handle_errors():
        project = service.create_project(name, role or [])
    console.print(f"[green]Created project {project.id}[/green]")


@project_app.command("list")
def project_list():
    """List projects."""
    service = load_workspace()
    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Roles")
    for project in service.list_projects():
        table.add_row(project.id, project.name, ", ".join(project.roles_available) or "-")
    console.print(table)


@project_app.command("roster")
def project_roster(
    project_id: str = typer.Argument(..., help="Project ID"),
    roles: list[str] = typer.Argument(..., help="Casting roles"),
):
    """Replace a project's casting roster."""
    service = load_workspace()
    with handle_errors():
        project = service.set_roster(project_id, roles)
    console.print(f"[green]Roster: {', '.join(project.roles_available)}[/green]")


# =============================================================================
# DOCUMENTS
# =============================================================================

@document_app.command("add")
def document_add(
    title: str = typer.Argument(..., help="Document title"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Text file with the document content"),
    kind: DocumentKind = typer.Option(DocumentKind.SCREENPLAY, "--kind", "-k", case_sensitive=False),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID to link to"),
):
    """Add a screenplay or treatment."""
    content = ""
    if file:
        if not file.exists():
            console.print(f"[red]File not found: {file}[/red]")
            raise typer.Exit(1)
        content = file.read_text(encoding="utf-8")

    service = load_workspace()
    with handle_errors():
        document = service.add_document(title, content=content, kind=kind, project_id=project)
    console.print(f"[green]Added {document.kind.value} {document.id}[/green] ({len(content)} chars)")


@document_app.command("list")
def document_list():
    """List documents."""
    service = load_workspace()
    table = Table(title="Documents")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Kind")
    table.add_column("Project")
    for document in service.list_documents():
        table.add_row(document.id, document.title, document.kind.value, document.project_id or "-")
    console.print(table)


@document_app.command("link")
def document_link(
    document_id: str = typer.Argument(..., help="Document ID"),
    project_id: Optional[str] = typer.Argument(None, help="Project ID (omit to unlink)"),
):
    """Link a document to a project so its scenes live on the project timeline."""
    service = load_workspace()
    with handle_errors():
        document = service.link_document(document_id, project_id)
    if document.project_id:
        console.print(f"[green]{document.id} now uses the timeline of {document.project_id}[/green]")
    else:
        console.print(f"[green]{document.id} is no longer linked to a project[/green]")


# =============================================================================
# SCENES
# =============================================================================

def scene_service(document_id: str) -> SceneService:
    service = load_workspace()
    with handle_errors():
        return SceneService(service.open_session(document_id))


@scenes_app.command("list")
def scenes_list(document_id: str = typer.Argument(..., help="Document ID")):
    """List scenes in order."""
    service = scene_service(document_id)
    scenes = service.list_scenes()
    if not scenes:
        console.print("[dim]No scenes yet. Run 'storyreel generate scenes' or 'storyreel scenes add'.[/dim]")
        return
    print_scenes(scenes, f"Scenes ({service.session.store.kind.value})")


@scenes_app.command("show")
def scenes_show(
    document_id: str = typer.Argument(..., help="Document ID"),
    scene: str = typer.Argument(..., help="Scene ID or number"),
):
    """Show one scene in full."""
    service = scene_service(document_id)
    found = resolve_scene(service, scene)
    console.print(Panel(
        f"[bold]{found.name or 'Untitled'}[/bold] (scene {found.scene_number or '-'})\n"
        f"Status: {found.status.value}",
        title="Scene",
        border_style="green",
    ))
    console.print(f"\n[cyan]Description:[/cyan] {found.description}")
    console.print(f"[cyan]Location:[/cyan] {found.location}")
    console.print(f"[cyan]Characters:[/cyan] {', '.join(found.characters)}")
    console.print(f"[cyan]Shot type:[/cyan] {found.shot_type}")
    console.print(f"[cyan]Mood:[/cyan] {found.mood}")
    console.print(f"[cyan]Notes:[/cyan] {found.notes}")


@scenes_app.command("add")
def scenes_add(document_id: str = typer.Argument(..., help="Document ID")):
    """Append an empty scene."""
    service = scene_service(document_id)
    with handle_errors():
        scene = service.add_empty()
    console.print(f"[green]Added scene {scene.scene_number}[/green] ({scene.id})")


@scenes_app.command("edit")
def scenes_edit(
    document_id: str = typer.Argument(..., help="Document ID"),
    scene: str = typer.Argument(..., help="Scene ID or number"),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    location: Optional[str] = typer.Option(None, "--location"),
    character: Optional[list[str]] = typer.Option(None, "--character", "-c", help="Replaces the character list (repeatable)"),
    shot_type: Optional[str] = typer.Option(None, "--shot-type"),
    mood: Optional[str] = typer.Option(None, "--mood"),
    notes: Optional[str] = typer.Option(None, "--notes"),
    scene_status: Optional[SceneStatus] = typer.Option(None, "--status", case_sensitive=False),
):
    """Edit a scene."""
    service = scene_service(document_id)
    target = resolve_scene(service, scene)
    patch = ScenePatch(
        name=name,
        description=description,
        location=location,
        characters=character or None,
        shot_type=shot_type,
        mood=mood,
        notes=notes,
        status=scene_status,
    )
    if patch.is_empty():
        console.print("[yellow]Nothing to change.[/yellow]")
        return
    with handle_errors():
        updated = service.update_scene(target.id, patch)
    console.print(f"[green]Updated scene {updated.scene_number}[/green]")


@scenes_app.command("move")
def scenes_move(
    document_id: str = typer.Argument(..., help="Document ID"),
    scene: str = typer.Argument(..., help="Scene ID or number"),
    direction: MoveDirection = typer.Argument(..., case_sensitive=False),
):
    """Move a scene up or down. Scenes are renumbered from 0."""
    service = scene_service(document_id)
    target = resolve_scene(service, scene)
    with handle_errors():
        result = service.reorder(target.id, direction)
    if not result.moved:
        console.print(f"[yellow]Scene is already at the {'top' if direction == MoveDirection.UP else 'bottom'}.[/yellow]")
        return
    if result.failed:
        console.print(f"[red]{len(result.failed)} scene(s) could not be renumbered.[/red]")
    print_scenes(result.scenes, "Scenes")


@scenes_app.command("delete")
def scenes_delete(
    document_id: str = typer.Argument(..., help="Document ID"),
    scene: str = typer.Argument(..., help="Scene ID or number"),
):
    """Delete a scene."""
    service = scene_service(document_id)
    target = resolve_scene(service, scene)
    with handle_errors():
        service.delete_scene(target.id)
    console.print(f"[green]Deleted scene {target.scene_number or target.id}[/green]")


@scenes_app.command("clear")
def scenes_clear(
    document_id: str = typer.Argument(..., help="Document ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every scene of a document."""
    service = scene_service(document_id)
    count = len(service.list_scenes())
    if count == 0:
        console.print("[dim]No scenes to delete.[/dim]")
        return
    if not yes and not typer.confirm(f"Delete all {count} scenes? This cannot be undone.", default=False):
        raise typer.Abort()

    with handle_errors():
        result = service.clear_all()
    console.print(f"[green]Deleted {len(result.deleted)} scene(s)[/green]")
    if result.failed:
        console.print(f"[red]{len(result.failed)} scene(s) could not be deleted.[/red]")


# =============================================================================
# GENERATION
# =============================================================================

@generate_app.command("scenes")
def generate_scenes_cmd(
    document_id: str = typer.Argument(..., help="Document ID"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of scenes to ask for"),
):
    """Break the document down into scene titles."""
    service = scene_service(document_id)
    with handle_errors():
        result = with_spinner("Generating scenes...", service.generate_scenes(expected_count=count))

    console.print(f"\n[green]Created {len(result.created)} scene(s)[/green]")
    if result.duplicates:
        console.print(f"  Skipped (already exist): {', '.join(result.duplicates)}")
    if result.failed:
        console.print(f"  [red]Failed: {', '.join(result.failed)}[/red]")
    recovery_note(result.recovery)
    console.print(f"[dim]Next: storyreel generate details {document_id}[/dim]")


@generate_app.command("details")
def generate_details_cmd(document_id: str = typer.Argument(..., help="Document ID")):
    """Fill missing descriptions, locations and characters."""
    service = load_workspace()
    with handle_errors():
        details = DetailService(service.open_session(document_id))
        result = with_spinner("Generating scene details...", details.fill_gaps())

    console.print(f"\n[green]Filled {len(result.filled)} scene(s)[/green]")
    console.print(f"  Already complete: {result.already_complete}")
    if result.skipped:
        console.print(f"  Skipped: {len(result.skipped)}")
    if result.failed:
        console.print(f"  [red]Failed: {len(result.failed)}[/red]")
    if result.needs_another_run:
        console.print("[yellow]Some scenes still lack details. Run the command again to fill the rest.[/yellow]")


@generate_app.command("regenerate")
def generate_regenerate_cmd(
    document_id: str = typer.Argument(..., help="Document ID"),
    scene: str = typer.Argument(..., help="Scene ID or number"),
    feedback: Optional[str] = typer.Option(None, "--feedback", "-f", help="Feedback to guide generation"),
):
    """Regenerate one scene's details."""
    scenes = scene_service(document_id)
    target = resolve_scene(scenes, scene)
    with handle_errors():
        details = DetailService(scenes.session)
        updated = with_spinner(
            f"Regenerating scene {target.scene_number}...",
            details.regenerate_scene(target.id, feedback=feedback),
        )
    console.print(f"[green]Regenerated scene {updated.scene_number}[/green]")
    console.print(f"\n{updated.description}")


# =============================================================================
# ENTITIES
# =============================================================================

@entities_app.command("detect")
def entities_detect(
    document_id: str = typer.Argument(..., help="Document ID"),
    kind: str = typer.Option("characters", "--kind", "-k", help="characters or locations"),
):
    """Detect character or location names in the document."""
    entity_kind = parse_kind(kind)
    service = load_workspace()
    with handle_errors():
        entities = EntityService(service.open_session(document_id))
        result = with_spinner(f"Detecting {kind}...", entities.detect(entity_kind))

    if not result.names:
        console.print(f"[yellow]No {kind} detected.[/yellow]")
        return
    console.print(f"[green]Detected {len(result.names)} {kind}:[/green]")
    for name in result.names:
        console.print(f"  - {name}")


@entities_app.command("list")
def entities_list(
    document_id: str = typer.Argument(..., help="Document ID"),
    kind: str = typer.Option("characters", "--kind", "-k", help="characters or locations"),
):
    """List names found in scenes, with roster and durable-record gaps."""
    entity_kind = parse_kind(kind)
    service = load_workspace()
    with handle_errors():
        entities = EntityService(service.open_session(document_id))
        scenes = entities.store.list_scenes(entities.session.container_id)
        found = entities.detected_entities(entity_kind, scenes=scenes)
        pending = {e.name for e in entities.not_yet_durable(entity_kind, scenes=scenes)}
        missing = set(entities.missing_in_roster(scenes=scenes)) if entity_kind == EntityKind.CHARACTER else set()

    table = Table(title=kind.title())
    table.add_column("Name", style="bold")
    table.add_column("Scenes", justify="right")
    table.add_column("Record")
    if entity_kind == EntityKind.CHARACTER:
        table.add_column("Roster")
    for entity in found:
        row = [
            entity.name,
            str(entity.occurrence_count),
            "[yellow]missing[/yellow]" if entity.name in pending else "[green]yes[/green]",
        ]
        if entity_kind == EntityKind.CHARACTER:
            row.append("[yellow]missing[/yellow]" if entity.name in missing else "[green]yes[/green]")
        table.add_row(*row)
    console.print(table)


@entities_app.command("distribute")
def entities_distribute(
    document_id: str = typer.Argument(..., help="Document ID"),
    name: Optional[list[str]] = typer.Option(None, "--name", "-n", help="Character name (repeatable); detects names if omitted"),
):
    """Add character names to scenes, spread evenly in order."""
    service = load_workspace()
    with handle_errors():
        entities = EntityService(service.open_session(document_id))
        names = name
        if not names:
            detection = with_spinner("Detecting characters...", entities.detect(EntityKind.CHARACTER))
            names = detection.names
        result = entities.distribute(None, names)

    console.print(
        f"[green]Updated {len(result.updated)} scene(s), created {len(result.created)}, "
        f"{result.unchanged} unchanged[/green]"
    )
    if result.failed:
        console.print(f"[red]{len(result.failed)} scene(s) could not be updated.[/red]")


# =============================================================================
# SERVER
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
):
    """Start the StoryReel API server."""
    import uvicorn

    from storyreel_api.app import create_app
    from storyreel_api.deps import settings

    settings.workspace_dir = resolve_workspace_path()

    console.print("\n[bold]StoryReel API Server[/bold]")
    console.print(f"  Workspace: {settings.workspace_dir}")
    console.print(f"  URL: http://{host}:{port}")
    console.print(f"  Docs: http://{host}:{port}/docs")
    console.print()

    if reload:
        os.environ["STORYREEL_ROOT"] = str(settings.workspace_dir)
        uvicorn.run(
            "storyreel_api.app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
        )
    else:
        uvicorn.run(create_app(workspace_dir=settings.workspace_dir), host=host, port=port)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
