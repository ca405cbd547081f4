import logging
from dataclasses import dataclass, field
from typing import Any

import networkx as nx
from pydantic import BaseModel, ValidationError

from .models import Delta, Edge, Node, Snapshot

logger = logging.getLogger(__name__)


def _wire_keys(model: type[BaseModel], changes: dict[str, Any]) -> dict[str, Any]:
    """Map snake_case field names in `changes` to their camelCase aliases; drop `id`."""
    aliases = {name: info.alias or name for name, info in model.model_fields.items()}
    return {aliases.get(k, k): v for k, v in changes.items() if k != "id"}


def _patch_node(node: Node, changes: dict[str, Any]) -> Node:
    data = node.model_dump(by_alias=True)
    data.update(_wire_keys(Node, changes))
    return Node.model_validate(data)


def _patch_edge(edge: Edge, changes: dict[str, Any]) -> Edge:
    changes = _wire_keys(Edge, changes)
    data = edge.model_dump(by_alias=True)
    data.update(changes)
    appended = changes.get("events")
    if isinstance(appended, str):
        appended = [appended]
    if appended is None:
        data["events"] = list(edge.events)
    elif isinstance(appended, list):
        data["events"] = list(edge.events) + appended
    # any other value is left in place for validation to reject
    return Edge.model_validate(data)


def apply_delta(snapshot: Snapshot, delta: Delta) -> Snapshot:
    """
    Merge a delta into a snapshot and return the resulting new snapshot.

    Nodes are processed before edges; for each, additions, then patches, then
    removals. Additions are skipped when the id already exists, patches and
    removals targeting unknown ids are no-ops. Edge events are appended, never
    replaced. The input snapshot is left untouched.
    """
    nodes = list(snapshot.nodes)
    edges = list(snapshot.edges)

    node_ids = {n.id for n in nodes}
    for node in delta.new_nodes:
        if node.id not in node_ids:
            nodes.append(node)
            node_ids.add(node.id)

    for patch in delta.updated_nodes:
        for i, node in enumerate(nodes):
            if node.id == patch.id:
                try:
                    nodes[i] = _patch_node(node, patch.changes)
                except ValidationError as e:
                    logger.warning("Skipping invalid update for node %r: %s", patch.id, e)
                break

    removed_nodes = set(delta.removed_node_ids)
    nodes = [n for n in nodes if n.id not in removed_nodes]

    edge_ids = {e.id for e in edges}
    for edge in delta.new_edges:
        if edge.id not in edge_ids:
            edges.append(edge)
            edge_ids.add(edge.id)

    for patch in delta.updated_edges:
        for i, edge in enumerate(edges):
            if edge.id == patch.id:
                try:
                    edges[i] = _patch_edge(edge, patch.changes)
                except ValidationError as e:
                    logger.warning("Skipping invalid update for edge %r: %s", patch.id, e)
                break

    removed_edges = set(delta.removed_edge_ids)
    edges = [e for e in edges if e.id not in removed_edges]

    return Snapshot(nodes=nodes, edges=edges)


# --- networkx views ---


def to_networkx(snapshot: Snapshot) -> nx.MultiDiGraph:
    """Build a directed multigraph; edges are keyed by edge id."""
    G = nx.MultiDiGraph()
    for node in snapshot.nodes:
        G.add_node(node.id, **node.model_dump(exclude={"id"}))
    for edge in snapshot.edges:
        # networkx creates bare nodes for endpoints missing from the snapshot
        G.add_edge(edge.source, edge.target, key=edge.id, **edge.model_dump(exclude={"id", "source", "target"}))
    return G


def find_dangling_edges(snapshot: Snapshot) -> list[str]:
    """Ids of edges whose source or target is not a node of the snapshot. Report only."""
    node_ids = snapshot.node_ids()
    return [e.id for e in snapshot.edges if e.source not in node_ids or e.target not in node_ids]


@dataclass
class GraphSummary:
    node_count: int
    edge_count: int
    component_count: int
    dangling_edge_ids: list[str] = field(default_factory=list)
    isolated_node_ids: list[str] = field(default_factory=list)
    hubs: list[tuple[str, int]] = field(default_factory=list)


def summarize_graph(snapshot: Snapshot, top: int = 5) -> GraphSummary:
    G = to_networkx(snapshot)
    known = snapshot.node_ids()
    G.remove_nodes_from([n for n in list(G.nodes) if n not in known])
    degrees = sorted(G.degree(), key=lambda item: (-item[1], item[0]))
    return GraphSummary(
        node_count=len(snapshot.nodes),
        edge_count=len(snapshot.edges),
        component_count=nx.number_weakly_connected_components(G) if len(G) else 0,
        dangling_edge_ids=find_dangling_edges(snapshot),
        isolated_node_ids=sorted(nx.isolates(G)),
        hubs=[(node_id, degree) for node_id, degree in degrees[:top] if degree > 0],
    )
