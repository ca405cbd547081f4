"""
Chart projection: the visual encoding every renderer and exporter must honor.

size = 20 + importance * 4, opacity by status, width = max(1, strength / 3),
color by relation type, category by faction with the reserved "other"
category always last.
"""

from typing import Any

from pydantic import BaseModel, Field

from .models import Edge, Node, NodeStatus, NodeType, RelationType, Snapshot

RELATION_COLORS = {
    RelationType.HOSTILE: "#ef4444",
    RelationType.ROMANTIC: "#ec4899",
    RelationType.ALLIANCE: "#f59e0b",
    RelationType.NEUTRAL: "#9ca3af",
    RelationType.FAMILY: "#3b82f6",
    RelationType.MENTOR: "#22c55e",
}
DEFAULT_RELATION_COLOR = "#9ca3af"

NODE_SYMBOLS = {
    NodeType.CHARACTER: "circle",
    NodeType.FACTION: "diamond",
    NodeType.LOCATION: "rect",
    NodeType.ITEM: "triangle",
}

FACTION_PALETTE = [
    "#6366f1", "#8b5cf6", "#06b6d4", "#14b8a6",
    "#f97316", "#ef4444", "#ec4899", "#84cc16",
]

OTHER_CATEGORY = "other"
DECEASED_COLOR = "#6b7280"
LINK_OPACITY = 0.6


class ChartCategory(BaseModel):
    name: str
    color: str


class ChartNode(BaseModel):
    id: str
    name: str
    symbol: str
    size: int
    category: int
    value: int
    show_label: bool
    opacity: float
    color: str | None = None
    raw: Node


class ChartLink(BaseModel):
    source: str
    target: str
    value: int
    color: str
    width: float
    opacity: float = LINK_OPACITY
    raw: Edge


class ChartData(BaseModel):
    nodes: list[ChartNode] = Field(default_factory=list)
    links: list[ChartLink] = Field(default_factory=list)
    categories: list[ChartCategory] = Field(default_factory=list)

    def to_echarts(self) -> dict[str, Any]:
        """Plain dicts in the ECharts graph series layout."""
        nodes = []
        for n in self.nodes:
            item_style: dict[str, Any] = {"opacity": n.opacity}
            if n.color:
                item_style["color"] = n.color
            nodes.append(
                {
                    "id": n.id,
                    "name": n.name,
                    "symbol": n.symbol,
                    "symbolSize": n.size,
                    "category": n.category,
                    "value": n.value,
                    "label": {"show": n.show_label},
                    "itemStyle": item_style,
                }
            )
        links = [
            {
                "source": link.source,
                "target": link.target,
                "value": link.value,
                "lineStyle": {"color": link.color, "width": link.width, "opacity": link.opacity},
            }
            for link in self.links
        ]
        categories = [{"name": c.name, "itemStyle": {"color": c.color}} for c in self.categories]
        return {"nodes": nodes, "links": links, "categories": categories}


def faction_color_map(nodes: list[Node]) -> dict[str, str]:
    """Assign palette colors to factions in order of first appearance."""
    colors: dict[str, str] = {}
    for node in nodes:
        if node.faction and node.faction not in colors:
            colors[node.faction] = FACTION_PALETTE[len(colors) % len(FACTION_PALETTE)]
    return colors


def node_size(node: Node) -> int:
    return 20 + node.importance * 4


def node_opacity(node: Node) -> float:
    if node.status == NodeStatus.DECEASED:
        return 0.35
    if node.status == NodeStatus.OFFLINE:
        return 0.6
    return 1


def link_width(edge: Edge) -> float:
    return max(1, edge.strength / 3)


def project_snapshot(
    snapshot: Snapshot | None,
    dark: bool = False,
    faction_colors: dict[str, str] | None = None,
) -> ChartData:
    if snapshot is None:
        return ChartData()

    faction_colors = faction_colors or {}
    factions: list[str] = []
    for node in snapshot.nodes:
        if node.faction and node.faction not in factions:
            factions.append(node.faction)

    categories = [ChartCategory(name=f, color=faction_colors.get(f, FACTION_PALETTE[0])) for f in factions]
    categories.append(ChartCategory(name=OTHER_CATEGORY, color="#a78bfa" if dark else "#6366f1"))
    other_index = len(categories) - 1

    nodes = []
    for node in snapshot.nodes:
        size = node_size(node)
        nodes.append(
            ChartNode(
                id=node.id,
                name=node.label,
                symbol=NODE_SYMBOLS.get(node.type, "circle"),
                size=size,
                category=factions.index(node.faction) if node.faction else other_index,
                value=node.importance,
                show_label=size > 36,
                opacity=node_opacity(node),
                color=DECEASED_COLOR if node.status == NodeStatus.DECEASED else None,
                raw=node,
            )
        )

    links = [
        ChartLink(
            source=edge.source,
            target=edge.target,
            value=edge.strength,
            color=RELATION_COLORS.get(edge.relation_type, DEFAULT_RELATION_COLOR),
            width=link_width(edge),
            raw=edge,
        )
        for edge in snapshot.edges
    ]
    return ChartData(nodes=nodes, links=links, categories=categories)
