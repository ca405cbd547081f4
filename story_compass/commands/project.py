import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from ..cli_utils import console, load_project_or_exit, open_store
from ..models import Project
from ..snapshots import snapshot_chapters

logger = logging.getLogger(__name__)

project_app = typer.Typer(help="Manage novel projects and their material.", no_args_is_help=True)

DbOption = Annotated[Optional[Path], typer.Option("--db", help="DuckDB file (defaults to COMPASS_DUCKDB_PATH).")]
ReadableFile = Annotated[Path, typer.Argument(exists=True, dir_okay=False, readable=True)]


@project_app.command(help="Create an empty project and print its id.")
def create(
    title: Annotated[str, typer.Option(help="Project title.")],
    topic: Annotated[str, typer.Option(help="One-line premise.")] = "",
    project_id: Annotated[Optional[str], typer.Option("--id", help="Explicit project id.")] = None,
    db: DbOption = None,
):
    fields = {"title": title, "topic": topic}
    if project_id:
        fields["id"] = project_id
    project = Project(**fields)
    with open_store(db) as store:
        if store.get(project.id) is not None:
            typer.secho(f"Project '{project.id}' already exists.", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        store.save(project)
    logger.info(f"Created project {project.id}")
    typer.echo(project.id)


@project_app.command("list", help="List stored projects.")
def list_projects(db: DbOption = None):
    with open_store(db) as store:
        rows = store.list_projects()
    if not rows:
        typer.echo("No projects.")
        return
    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Updated", style="yellow")
    for row in rows:
        table.add_row(row["id"], row["title"], row["updated_at"])
    console.print(table)


@project_app.command(help="Show a project's chapters and graph status.")
def show(project_id: Annotated[str, typer.Argument()], db: DbOption = None):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    graph_data = project.graph_data
    typer.echo(f"{project.title} ({project.id})")
    typer.echo(f"  Chapters: {', '.join(str(n) for n in sorted(project.chapters)) or '-'}")
    typer.echo(f"  Graph generated: {'yes' if graph_data.graph_generated else 'no'}")
    typer.echo(f"  Snapshots at chapters: {', '.join(str(n) for n in snapshot_chapters(graph_data.snapshots)) or '-'}")
    if graph_data.audit.last_audit_at:
        typer.echo(
            f"  Last audit: {graph_data.audit.last_audit_at.isoformat()} "
            f"({len(graph_data.audit.inconsistencies)} inconsistencies)"
        )


@project_app.command("add-chapter", help="Store (or replace) the text of a chapter.")
def add_chapter(
    project_id: Annotated[str, typer.Argument()],
    number: Annotated[int, typer.Argument(min=1, help="Chapter number, starting at 1.")],
    chapter_file: ReadableFile,
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    if number in project.graph_data.snapshots:
        typer.secho(
            f"Warning: chapter {number} already has a graph snapshot; it will not be re-analysed.",
            fg=typer.colors.YELLOW,
        )
    project.chapters[number] = chapter_file.read_text(encoding="utf-8")
    with open_store(db) as store:
        store.save(project)
    typer.echo(f"Chapter {number} stored ({len(project.chapters[number])} chars).")


@project_app.command("set-material", help="Load the aggregate setting material from text files.")
def set_material(
    project_id: Annotated[str, typer.Argument()],
    character_dynamics: Annotated[Optional[Path], typer.Option(exists=True, dir_okay=False, help="Character roster.")] = None,
    character_state: Annotated[Optional[Path], typer.Option(exists=True, dir_okay=False, help="Character state document.")] = None,
    world_building: Annotated[Optional[Path], typer.Option(exists=True, dir_okay=False, help="World description.")] = None,
    plot_architecture: Annotated[Optional[Path], typer.Option(exists=True, dir_okay=False, help="Plot architecture.")] = None,
    blueprint: Annotated[Optional[Path], typer.Option(exists=True, dir_okay=False, help="Chapter outline.")] = None,
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    sources = {
        "character_dynamics": character_dynamics,
        "character_state": character_state,
        "world_building": world_building,
        "plot_architecture": plot_architecture,
        "chapter_blueprint": blueprint,
    }
    updated = []
    for field_name, path in sources.items():
        if path is not None:
            setattr(project, field_name, path.read_text(encoding="utf-8"))
            updated.append(field_name)
    if not updated:
        typer.echo("Nothing to update.")
        return
    with open_store(db) as store:
        store.save(project)
    typer.echo(f"Updated: {', '.join(updated)}")


@project_app.command(help="Delete a project.")
def delete(
    project_id: Annotated[str, typer.Argument()],
    yes: Annotated[bool, typer.Option("--yes", help="Do not ask for confirmation.")] = False,
    db: DbOption = None,
):
    if not yes:
        typer.confirm(f"Delete project '{project_id}'?", abort=True)
    with open_store(db) as store:
        deleted = store.delete(project_id)
    if not deleted:
        typer.secho(f"Project '{project_id}' not found.", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {project_id}.")
