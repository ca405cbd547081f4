import datetime
import math
import os
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _clamp_score(value, default: int) -> int:
    """Clamp a 1-10 score; raises ValueError for anything that is not a finite number."""
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    try:
        number = float(value)
    except ValueError:
        raise ValueError(f"expected a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return max(1, min(10, int(number)))


def _string_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list of strings, got {type(value).__name__}")
    return [str(v) for v in value]


def _coerce_chapter_keys(value):
    if isinstance(value, dict):
        return {
            int(k) if isinstance(k, str) and k.strip().lstrip("-").isdigit() else k: v
            for k, v in value.items()
        }
    return value


# --- Enums ---
class NodeType(str, Enum):
    CHARACTER = "character"
    FACTION = "faction"
    LOCATION = "location"
    ITEM = "item"


class NodeStatus(str, Enum):
    ACTIVE = "active"
    DECEASED = "deceased"
    OFFLINE = "offline"


class RelationType(str, Enum):
    HOSTILE = "hostile"
    ROMANTIC = "romantic"
    ALLIANCE = "alliance"
    NEUTRAL = "neutral"
    FAMILY = "family"
    MENTOR = "mentor"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# --- Base Models ---


class CompassModel(BaseModel):
    """Base for every record that crosses the JSON boundary (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Graph Records ---


class Node(CompassModel):
    """An entity of the story world: character, faction, location or item."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    type: NodeType = NodeType.CHARACTER
    importance: int = 5
    faction: str | None = None  # faction label, not a node id
    status: NodeStatus = NodeStatus.ACTIVE
    bio: str = ""
    traits: list[str] = Field(default_factory=list)
    first_appearance: int = 0

    @field_validator("importance", mode="before")
    def clamp_importance(cls, value):
        return _clamp_score(value, 5)

    @field_validator("first_appearance", mode="before")
    def default_first_appearance(cls, value):
        return 0 if value is None else value

    @field_validator("label", "bio", mode="before")
    def none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("faction", mode="before")
    def blank_faction_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("traits", mode="before")
    def coerce_traits(cls, value):
        return _string_list(value)


class Edge(CompassModel):
    """A typed relation between two nodes. Endpoints are not checked against the node set."""

    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    target: str
    relation_type: RelationType = RelationType.NEUTRAL
    label: str = ""
    strength: int = 3
    description: str = ""
    events: list[str] = Field(default_factory=list)

    @field_validator("strength", mode="before")
    def clamp_strength(cls, value):
        return _clamp_score(value, 3)

    @field_validator("label", "description", mode="before")
    def none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("events", mode="before")
    def coerce_events(cls, value):
        return _string_list(value)


class Snapshot(CompassModel):
    """A fully materialized graph state at one chapter."""

    model_config = ConfigDict(frozen=True)

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_node(self, node_id: str) -> Node | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_edge(self, edge_id: str) -> Edge | None:
        return next((e for e in self.edges if e.id == edge_id), None)


# --- Delta Models ---


class NodePatch(CompassModel):
    id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class EdgePatch(CompassModel):
    id: str
    changes: dict[str, Any] = Field(default_factory=dict)


class Delta(CompassModel):
    """How the graph changes from one chapter to the next."""

    new_nodes: list[Node] = Field(default_factory=list)
    updated_nodes: list[NodePatch] = Field(default_factory=list)
    removed_node_ids: list[str] = Field(default_factory=list)
    new_edges: list[Edge] = Field(default_factory=list)
    updated_edges: list[EdgePatch] = Field(default_factory=list)
    removed_edge_ids: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.new_nodes
            or self.updated_nodes
            or self.removed_node_ids
            or self.new_edges
            or self.updated_edges
            or self.removed_edge_ids
        )


# --- Audit Models ---


class Inconsistency(CompassModel):
    """A logical problem flagged across the chapter sequence, e.g. a dead character reappearing."""

    type: str = "unspecified"
    severity: Severity = Severity.WARNING
    node_ids: list[str] = Field(default_factory=list)
    edge_ids: list[str] = Field(default_factory=list)
    chapters: list[int] = Field(default_factory=list)
    message: str = ""


class AuditResult(CompassModel):
    inconsistencies: list[Inconsistency] = Field(default_factory=list)
    last_audit_at: datetime.datetime | None = None


class GraphData(CompassModel):
    """The versioned graph of a project: sparse chapter-indexed snapshots plus the last audit."""

    version: int = 1
    generated_at: datetime.datetime | None = None
    snapshots: dict[int, Snapshot] = Field(default_factory=dict)
    audit: AuditResult = Field(default_factory=AuditResult)
    graph_generated: bool = False

    @field_validator("snapshots", mode="before")
    def coerce_str_keys_to_int(cls, value):
        return _coerce_chapter_keys(value)

    def to_storage(self) -> dict[str, Any]:
        data = self.to_wire()
        data["snapshots"] = {str(k): v for k, v in data["snapshots"].items()}
        return data


# --- Project Model ---


class Project(CompassModel):
    """A generated novel: aggregate setting material, chapter texts and the relationship graph."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    title: str
    topic: str = ""
    character_dynamics: str = ""
    character_state: str = ""
    world_building: str = ""
    plot_architecture: str = ""
    chapter_blueprint: str = ""
    chapters: dict[int, str] = Field(default_factory=dict)
    graph_data: GraphData = Field(default_factory=GraphData)
    chapter_graphs: dict[int, Snapshot] = Field(default_factory=dict)
    created_at: datetime.datetime = Field(default_factory=utcnow)
    updated_at: datetime.datetime = Field(default_factory=utcnow)

    @field_validator("chapters", "chapter_graphs", mode="before")
    def coerce_str_keys_to_int(cls, value):
        return _coerce_chapter_keys(value)

    def to_storage(self) -> dict[str, Any]:
        data = self.to_wire()
        data["chapters"] = {str(k): v for k, v in data["chapters"].items()}
        data["chapterGraphs"] = {str(k): v for k, v in data["chapterGraphs"].items()}
        data["graphData"] = self.graph_data.to_storage()
        return data


# --- Configuration Models ---


class GeneratorConfig(BaseModel):
    """Settings for an OpenAI-compatible chat completion endpoint."""

    base_url: str = "https://api.chatfire.site/v1"
    api_key: str = ""
    model: str = "gemini-3-flash-preview"
    temperature: float = 0.7
    max_tokens: int = 8192
    timeout: float = 600.0  # seconds

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        defaults = cls()
        return cls(
            base_url=os.getenv("COMPASS_BASE_URL", defaults.base_url),
            api_key=os.getenv("COMPASS_API_KEY", ""),
            model=os.getenv("COMPASS_MODEL", defaults.model),
            temperature=float(os.getenv("COMPASS_TEMPERATURE", defaults.temperature)),
            max_tokens=int(os.getenv("COMPASS_MAX_TOKENS", defaults.max_tokens)),
            timeout=float(os.getenv("COMPASS_TIMEOUT", defaults.timeout)),
        )
