import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Character limits applied to each piece of material included in a prompt
BASELINE_ROSTER_LIMIT = 2000
BASELINE_STATE_LIMIT = 1000
BASELINE_WORLD_LIMIT = 1000
DELTA_CHAPTER_LIMIT = 2000
AUDIT_OUTLINE_LIMIT = 500
AUDIT_SNAPSHOTS_LIMIT = 1000
CHAPTER_GRAPH_TEXT_LIMIT = 2000
CHAPTER_GRAPH_STATE_LIMIT = 500

RELATION_TYPES_HINT = "hostile/romantic/alliance/neutral/family/mentor"


class PromptKind(str, Enum):
    BASELINE = "baseline"
    CHAPTER_DELTA = "chapter_delta"
    AUDIT = "audit"
    CHAPTER_GRAPH = "chapter_graph"


class PromptRequest(BaseModel):
    """A structured parameter bundle handed to a narrative generator."""

    kind: PromptKind
    params: dict[str, Any] = Field(default_factory=dict)


def _clip(value: str | None, limit: int) -> str:
    if not value:
        return "(none)"
    return value[:limit]


def _baseline_prompt(params: dict[str, Any]) -> str:
    return f"""You are a JSON generator. Extract the characters, factions, locations, items and their relations from the material below. Output JSON only, with no extra text.

Character roster: {_clip(params.get("characterDynamics"), BASELINE_ROSTER_LIMIT)}
Character state: {_clip(params.get("characterState"), BASELINE_STATE_LIMIT)}
World building: {_clip(params.get("worldBuilding"), BASELINE_WORLD_LIMIT)}
Plot architecture: {_clip(params.get("plotArchitecture"), BASELINE_WORLD_LIMIT)}

Output format example:
{{"nodes":[{{"id":"char_alice","label":"Alice","type":"character","importance":8,"faction":null,"status":"active","bio":"Protagonist","traits":[],"firstAppearance":0}}],"edges":[{{"id":"edge_alice_bob","source":"char_alice","target":"char_bob","relationType":"alliance","label":"friends","strength":7,"description":"Childhood friends","events":[]}}]}}

Node types: character/faction/location/item. Status: active/deceased/offline.
Relation types: {RELATION_TYPES_HINT}
importance and strength range from 1 to 10. Output JSON only."""


def _chapter_delta_prompt(params: dict[str, Any]) -> str:
    current_nodes = json.dumps(params.get("currentNodes", []), ensure_ascii=False)
    current_edges = json.dumps(params.get("currentEdges", []), ensure_ascii=False)
    return f"""You are a JSON generator. Analyse how the relationship graph changes in this chapter and output the delta as JSON.

Current nodes: {current_nodes}
Current relations: {current_edges}

Chapter {params.get("chapterNumber")}: {_clip(params.get("chapterText"), DELTA_CHAPTER_LIMIT)}

Output format: {{"newNodes":[],"updatedNodes":[{{"id":"","changes":{{}}}}],"removedNodeIds":[],"newEdges":[],"updatedEdges":[{{"id":"","changes":{{"events":["what happened"]}}}}],"removedEdgeIds":[]}}

Relation types: {RELATION_TYPES_HINT}. Leave every list empty when nothing changed.
Output JSON only, with no extra text."""


def _audit_prompt(params: dict[str, Any]) -> str:
    return f"""You are a JSON generator. Check the chapter-by-chapter relationship graph for logical problems (for example a deceased character reappearing) and output JSON.

Chapter outline: {_clip(params.get("chapterBlueprint"), AUDIT_OUTLINE_LIMIT)}
Graph snapshots: {_clip(params.get("snapshotsText"), AUDIT_SNAPSHOTS_LIMIT)}

Output format: {{"inconsistencies":[{{"type":"dead_reappear","severity":"error","nodeIds":[],"edgeIds":[],"chapters":[],"message":"description"}}]}}

severity: error/warning/info. Output JSON only."""


def _chapter_graph_prompt(params: dict[str, Any]) -> str:
    return f"""You are a JSON generator. Extract the character relations of this chapter.

Chapter {params.get("chapterNumber")}: {_clip(params.get("chapterText"), CHAPTER_GRAPH_TEXT_LIMIT)}
Character state: {_clip(params.get("characterState"), CHAPTER_GRAPH_STATE_LIMIT)}

Output format: {{"nodes":[{{"id":"char_xxx","label":"Name","type":"character","importance":5,"faction":null,"status":"active","bio":"Short bio"}}],"edges":[{{"source":"char_a","target":"char_b","relationType":"alliance","label":"relation","strength":5}}]}}

Relation types: {RELATION_TYPES_HINT}. Output JSON only."""


_RENDERERS = {
    PromptKind.BASELINE: _baseline_prompt,
    PromptKind.CHAPTER_DELTA: _chapter_delta_prompt,
    PromptKind.AUDIT: _audit_prompt,
    PromptKind.CHAPTER_GRAPH: _chapter_graph_prompt,
}


def render_prompt(request: PromptRequest) -> str:
    """Build the prompt text for a request."""
    return _RENDERERS[request.kind](request.params)
