import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.table import Table

from .. import audit, builder, export, graph_logic
from ..cli_utils import console, echo_progress, load_project_or_exit, open_store
from ..llm import ChatCompletionGenerator, GeneratorError, NarrativeGenerator
from ..snapshots import latest_snapshot, nearest_at_or_before, snapshot_chapters

logger = logging.getLogger(__name__)

graph_app = typer.Typer(help="Build, query and audit the relationship graph.", no_args_is_help=True)

DbOption = Annotated[Optional[Path], typer.Option("--db", help="DuckDB file (defaults to COMPASS_DUCKDB_PATH).")]
ChapterOption = Annotated[
    Optional[int], typer.Option("--chapter", "-c", help="Show the graph as of this chapter (default: latest).")
]


def get_generator() -> NarrativeGenerator:
    return ChatCompletionGenerator()


def _fail(message: str, error: Exception) -> NoReturn:
    logger.error(f"{message}: {error}", exc_info=True)
    typer.secho(f"{message}: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


@graph_app.command(help="Extract the chapter-0 baseline graph from the project's setting material.")
def baseline(
    project_id: Annotated[str, typer.Argument()],
    force: Annotated[bool, typer.Option("--force", help="Discard the existing graph history.")] = False,
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    if project.graph_data.graph_generated and not force:
        typer.secho(
            "A graph already exists for this project. Use --force to rebuild it from scratch.",
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(1)
    try:
        project.graph_data = asyncio.run(builder.build_baseline(project, get_generator(), echo_progress))
    except builder.BaselineUnavailableError as e:
        _fail("Baseline unavailable", e)
    with open_store(db) as store:
        store.save(project)
    snapshot = project.graph_data.snapshots[0]
    typer.secho(
        f"Baseline stored: {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges.",
        fg=typer.colors.GREEN,
    )


@graph_app.command(help="Analyse every chapter without a snapshot and store the resulting snapshots.")
def advance(project_id: Annotated[str, typer.Argument()], db: DbOption = None):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    before = set(project.graph_data.snapshots)
    pending = builder.pending_chapters(project)
    if not pending:
        typer.echo("No pending chapters.")
        return
    try:
        project.graph_data = asyncio.run(
            builder.build_chapter_snapshots(project, get_generator(), echo_progress)
        )
    except builder.BaselineUnavailableError as e:
        _fail("Baseline unavailable", e)
    with open_store(db) as store:
        store.save(project)
    added = sorted(set(project.graph_data.snapshots) - before)
    skipped = [n for n in pending if n not in added]
    typer.secho(f"Snapshots stored for chapters: {', '.join(map(str, added)) or '-'}", fg=typer.colors.GREEN)
    if skipped:
        typer.echo(f"No snapshot for chapters: {', '.join(map(str, skipped))}")


@graph_app.command(help="Print the graph as of a chapter.")
def show(
    project_id: Annotated[str, typer.Argument()],
    chapter: ChapterOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the snapshot as JSON.")] = False,
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    snapshots = project.graph_data.snapshots
    snapshot = latest_snapshot(snapshots) if chapter is None else nearest_at_or_before(snapshots, chapter)
    if snapshot is None:
        typer.secho("No snapshot available for that chapter.", fg=typer.colors.YELLOW)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(snapshot.to_wire(), ensure_ascii=False, indent=2))
        return

    nodes_table = Table(title="Nodes")
    for column, style in (("ID", "cyan"), ("Label", "green"), ("Type", None), ("Status", None), ("Faction", None), ("Imp.", None)):
        nodes_table.add_column(column, style=style)
    for n in snapshot.nodes:
        nodes_table.add_row(n.id, n.label, n.type.value, n.status.value, n.faction or "-", str(n.importance))

    edges_table = Table(title="Relations")
    for column, style in (("ID", "cyan"), ("Source", None), ("Relation", "magenta"), ("Target", None), ("Str.", None), ("Events", None)):
        edges_table.add_column(column, style=style)
    for e in snapshot.edges:
        edges_table.add_row(e.id, e.source, e.relation_type.value, e.target, str(e.strength), str(len(e.events)))

    console.print(nodes_table)
    console.print(edges_table)


@graph_app.command("audit", help="Ask the generator for logical inconsistencies across chapters.")
def audit_command(project_id: Annotated[str, typer.Argument()], db: DbOption = None):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    try:
        project.graph_data = asyncio.run(audit.audit_graph(project, get_generator(), echo_progress))
    except (audit.GraphNotGeneratedError, GeneratorError) as e:
        _fail("Audit failed", e)
    with open_store(db) as store:
        store.save(project)

    findings = project.graph_data.audit.inconsistencies
    if not findings:
        typer.secho("No inconsistencies found.", fg=typer.colors.GREEN)
        return
    table = Table(title="Inconsistencies")
    table.add_column("Severity")
    table.add_column("Type", style="cyan")
    table.add_column("Chapters")
    table.add_column("Message")
    colors = {"error": "red", "warning": "yellow", "info": "blue"}
    for item in findings:
        severity = item.severity.value
        table.add_row(
            f"[{colors[severity]}]{severity}[/{colors[severity]}]",
            item.type,
            ", ".join(map(str, item.chapters)),
            item.message,
        )
    console.print(table)


@graph_app.command("export", help="Write a standalone HTML page of the latest graph.")
def export_command(
    project_id: Annotated[str, typer.Argument()],
    output: Annotated[Path, typer.Option("--output", "-o", help="HTML file to write.")] = Path("graph.html"),
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    page = export.generate_export_html(project.graph_data, project.title)
    if not page:
        typer.secho("Nothing to export: the project has no graph yet.", fg=typer.colors.YELLOW)
        raise typer.Exit(1)
    output.write_text(page, encoding="utf-8")
    typer.echo(f"Graph exported to {output}")


@graph_app.command("chapter-graph", help="Extract a standalone relation graph from one chapter.")
def chapter_graph(
    project_id: Annotated[str, typer.Argument()],
    chapter: Annotated[int, typer.Argument(min=1)],
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    try:
        snapshot = asyncio.run(builder.generate_chapter_graph(project, chapter, get_generator(), echo_progress))
    except (ValueError, builder.ChapterGraphError, GeneratorError) as e:
        _fail("Chapter graph failed", e)
    project.chapter_graphs[chapter] = snapshot
    with open_store(db) as store:
        store.save(project)
    typer.echo(f"Chapter {chapter} graph: {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges.")


@graph_app.command(help="Structural summary of the graph as of a chapter, including dangling edges.")
def inspect(
    project_id: Annotated[str, typer.Argument()],
    chapter: ChapterOption = None,
    db: DbOption = None,
):
    with open_store(db) as store:
        project = load_project_or_exit(store, project_id)
    snapshots = project.graph_data.snapshots
    snapshot = latest_snapshot(snapshots) if chapter is None else nearest_at_or_before(snapshots, chapter)
    if snapshot is None:
        typer.secho("No snapshot available for that chapter.", fg=typer.colors.YELLOW)
        raise typer.Exit(1)

    summary = graph_logic.summarize_graph(snapshot)
    typer.echo(f"Snapshots at chapters: {', '.join(map(str, snapshot_chapters(snapshots)))}")
    typer.echo(f"Nodes: {summary.node_count}  Edges: {summary.edge_count}  Components: {summary.component_count}")
    if summary.hubs:
        typer.echo("Most connected: " + ", ".join(f"{node_id} ({degree})" for node_id, degree in summary.hubs))
    if summary.isolated_node_ids:
        typer.echo(f"Isolated nodes: {', '.join(summary.isolated_node_ids)}")
    if summary.dangling_edge_ids:
        typer.secho(
            f"Dangling edges (endpoint missing): {', '.join(summary.dangling_edge_ids)}",
            fg=typer.colors.YELLOW,
        )
