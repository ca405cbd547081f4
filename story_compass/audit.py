import logging

from .builder import ProgressCallback, report_progress
from .llm import NarrativeGenerator
from .models import AuditResult, GraphData, Project, utcnow
from .normalizer import normalize_inconsistencies, parse_json_response
from .prompts import PromptKind, PromptRequest
from .snapshots import snapshot_chapters

logger = logging.getLogger(__name__)


class GraphNotGeneratedError(RuntimeError):
    """The project has no graph to audit yet."""


def describe_snapshots(graph_data: GraphData) -> str:
    """Compact per-chapter text: node labels with status, then source-[relation]-target triples."""
    blocks = []
    for chapter in snapshot_chapters(graph_data.snapshots):
        snapshot = graph_data.snapshots[chapter]
        nodes = ", ".join(f"{n.label}({n.status.value})" for n in snapshot.nodes)
        edges = ", ".join(f"{e.source}-[{e.relation_type.value}]-{e.target}" for e in snapshot.edges)
        blocks.append(f"--- Chapter {chapter} snapshot ---\nNodes: {nodes}\nRelations: {edges}")
    return "\n\n".join(blocks)


async def audit_graph(
    project: Project,
    generator: NarrativeGenerator,
    on_progress: ProgressCallback | None = None,
) -> GraphData:
    """
    Ask the generator for logical inconsistencies across the snapshot sequence.

    Returns new graph data whose `audit` holds the findings; snapshots are
    carried over untouched. Generator errors propagate to the caller.
    """
    graph_data = project.graph_data
    if not graph_data.graph_generated:
        raise GraphNotGeneratedError("Generate the graph first")

    report_progress(on_progress, "Auditing graph consistency...", 1, 2)
    request = PromptRequest(
        kind=PromptKind.AUDIT,
        params={
            "chapterBlueprint": project.chapter_blueprint or "(no outline)",
            "snapshotsText": describe_snapshots(graph_data),
        },
    )
    response = await generator.generate(request)

    result = parse_json_response(response)
    if not result.ok:
        logger.warning("Audit response could not be parsed (%s); recording no findings", result.failure.value)
    inconsistencies = normalize_inconsistencies(result.value)
    logger.info("Audit of project %s found %d inconsistencies", project.id, len(inconsistencies))

    report_progress(on_progress, "Audit complete", 2, 2)
    audit = AuditResult(inconsistencies=inconsistencies, last_audit_at=utcnow())
    return graph_data.model_copy(update={"audit": audit})
