"""
Graph builders.

`build_baseline` creates the chapter-0 snapshot from the aggregate setting.
`build_chapter_snapshots` advances the graph chapter by chapter, one
generator call at a time, since each delta is extracted against the snapshot
produced by the previous step.
"""

import logging
from collections.abc import Callable

from .graph_logic import apply_delta
from .llm import GeneratorError, NarrativeGenerator
from .models import AuditResult, GraphData, Project, Snapshot, utcnow
from .normalizer import normalize_delta, normalize_graph, parse_json_response
from .prompts import PromptKind, PromptRequest
from .snapshots import nearest_at_or_before, with_snapshot

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


class BaselineUnavailableError(RuntimeError):
    """No baseline graph exists, or one could not be produced."""


class ChapterGraphError(RuntimeError):
    """A single-chapter graph could not be extracted."""


def report_progress(on_progress: ProgressCallback | None, message: str, step: int, total: int) -> None:
    logger.debug("[%d/%d] %s", step, total, message)
    if on_progress:
        on_progress(message, step, total)


async def build_baseline(
    project: Project,
    generator: NarrativeGenerator,
    on_progress: ProgressCallback | None = None,
) -> GraphData:
    """Extract the baseline graph and return fresh graph data with it stored at chapter 0."""
    report_progress(on_progress, "Analysing the novel setting for entities and relations...", 1, 3)

    request = PromptRequest(
        kind=PromptKind.BASELINE,
        params={
            "characterDynamics": project.character_dynamics,
            "characterState": project.character_state,
            "worldBuilding": project.world_building,
            "plotArchitecture": project.plot_architecture,
        },
    )
    try:
        response = await generator.generate(request)
    except GeneratorError as e:
        raise BaselineUnavailableError(f"Baseline extraction failed: {e}") from e

    report_progress(on_progress, "Validating extracted graph...", 2, 3)
    result = parse_json_response(response)
    snapshot = normalize_graph(result.value) if result.ok else None
    if snapshot is None:
        reason = result.failure.value if result.failure else "missing node list"
        raise BaselineUnavailableError(f"Baseline extraction failed: malformed response ({reason})")

    logger.info(
        "Baseline graph for project %s: %d nodes, %d edges",
        project.id,
        len(snapshot.nodes),
        len(snapshot.edges),
    )
    report_progress(on_progress, "Baseline graph generated", 3, 3)
    return GraphData(
        generated_at=utcnow(),
        snapshots={0: snapshot},
        audit=AuditResult(),
        graph_generated=True,
    )


def pending_chapters(project: Project) -> list[int]:
    """Chapters that have text but no stored snapshot, ascending."""
    stored = set(project.graph_data.snapshots)
    return sorted(n for n, text in project.chapters.items() if text and n not in stored)


def _delta_request(reference: Snapshot, chapter: int, text: str) -> PromptRequest:
    return PromptRequest(
        kind=PromptKind.CHAPTER_DELTA,
        params={
            "currentNodes": [{"id": n.id, "label": n.label} for n in reference.nodes],
            "currentEdges": [{"id": e.id, "source": e.source, "target": e.target} for e in reference.edges],
            "chapterNumber": chapter,
            "chapterText": text,
        },
    )


async def build_chapter_snapshots(
    project: Project,
    generator: NarrativeGenerator,
    on_progress: ProgressCallback | None = None,
    keep_going: Callable[[], bool] | None = None,
) -> GraphData:
    """
    Store a snapshot for every pending chapter whose delta changes the graph.

    Chapters are processed in ascending order. A chapter whose generator call
    fails or whose response is not a usable delta is skipped with a warning;
    an empty delta, or one that leaves the graph unchanged, is skipped
    silently so no duplicate of the parent gets stored. `keep_going`, when
    given, is checked before each chapter starts.
    Returns new graph data; the project's own graph data is not modified.
    """
    graph_data = project.graph_data
    pending = pending_chapters(project)
    if not pending:
        return graph_data
    if 0 not in graph_data.snapshots:
        raise BaselineUnavailableError("Generate the baseline graph first")

    for i, chapter in enumerate(pending, start=1):
        if keep_going is not None and not keep_going():
            logger.info("Stopping before chapter %d on request", chapter)
            break
        report_progress(on_progress, f"Analysing relation changes in chapter {chapter}...", i, len(pending))

        reference = nearest_at_or_before(graph_data.snapshots, chapter - 1)
        if reference is None:
            continue

        try:
            response = await generator.generate(_delta_request(reference, chapter, project.chapters[chapter]))
        except GeneratorError as e:
            logger.warning("Graph analysis of chapter %d failed: %s", chapter, e)
            continue

        result = parse_json_response(response)
        try:
            delta = normalize_delta(result.value) if result.ok else None
            if delta is None:
                reason = result.failure.value if result.failure else "not a delta object"
                logger.warning("Graph analysis of chapter %d returned a malformed delta (%s)", chapter, reason)
                continue
            if delta.is_empty():
                logger.info("Chapter %d does not change the graph; no snapshot stored", chapter)
                continue
            snapshot = apply_delta(reference, delta)
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.warning("Graph analysis of chapter %d returned a malformed delta: %s", chapter, e, exc_info=True)
            continue
        if snapshot == reference:
            logger.info("Delta for chapter %d left the graph unchanged; no snapshot stored", chapter)
            continue

        graph_data = with_snapshot(graph_data, chapter, snapshot)
        logger.info("Stored snapshot for chapter %d", chapter)

    return graph_data.model_copy(update={"generated_at": utcnow()})


async def generate_chapter_graph(
    project: Project,
    chapter: int,
    generator: NarrativeGenerator,
    on_progress: ProgressCallback | None = None,
) -> Snapshot:
    """Extract a standalone graph of one chapter's relations (kept apart from the versioned snapshots)."""
    text = project.chapters.get(chapter)
    if not text:
        raise ValueError(f"Chapter {chapter} has no text")

    report_progress(on_progress, f"Extracting relations of chapter {chapter}...", 1, 1)
    request = PromptRequest(
        kind=PromptKind.CHAPTER_GRAPH,
        params={
            "chapterNumber": chapter,
            "chapterText": text,
            "characterState": project.character_state,
        },
    )
    response = await generator.generate(request)
    snapshot = normalize_graph(parse_json_response(response).value)
    if snapshot is None:
        raise ChapterGraphError(f"Relation extraction for chapter {chapter} failed: malformed response")
    return snapshot
