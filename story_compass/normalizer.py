"""
Response normalization.

Generators answer with free text: a JSON object, often wrapped in a markdown
fence and sometimes surrounded by commentary. This module recovers the object
and validates it into graph records, dropping anything that does not fit the
enumerated node/edge/status vocabularies.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from .models import Delta, Edge, EdgePatch, Inconsistency, Node, NodePatch, Snapshot

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")


class ParseFailure(str, Enum):
    EMPTY_INPUT = "empty_input"
    NO_OPENING_BRACE = "no_opening_brace"
    UNBALANCED_BRACES = "unbalanced_braces"
    INVALID_JSON = "invalid_json"


@dataclass(frozen=True)
class ParseResult:
    value: Any = None
    failure: ParseFailure | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _loads(text: str) -> ParseResult:
    try:
        return ParseResult(value=json.loads(text))
    except json.JSONDecodeError as e:
        return ParseResult(failure=ParseFailure.INVALID_JSON, detail=str(e))


def _balanced_object_span(text: str, start: int) -> int | None:
    """End index (exclusive) where brace depth opened at `start` returns to zero.

    Braces inside string literals are counted too.
    """
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def parse_json_response(text: str | None) -> ParseResult:
    """Recover one JSON value from generator output. Never raises."""
    if not text or not isinstance(text, str):
        return ParseResult(failure=ParseFailure.EMPTY_INPUT)

    cleaned = _strip_fences(text)
    if not cleaned:
        return ParseResult(failure=ParseFailure.EMPTY_INPUT)

    direct = _loads(cleaned)
    if direct.ok:
        return direct
    logger.debug("Direct parse failed: %s", direct.detail)

    first_brace = cleaned.find("{")
    if first_brace == -1:
        return ParseResult(failure=ParseFailure.NO_OPENING_BRACE, detail=direct.detail)

    end = _balanced_object_span(cleaned, first_brace)
    if end is None:
        return ParseResult(failure=ParseFailure.UNBALANCED_BRACES)

    candidate = cleaned[first_brace:end]
    extracted = _loads(candidate)
    if not extracted.ok:
        logger.debug("Extracted JSON parse failed: %s (text: %.200s)", extracted.detail, candidate)
    return extracted


def extract_json(text: str | None) -> Any:
    """Shortcut returning the parsed value, or None when nothing could be recovered."""
    result = parse_json_response(text)
    return result.value if result.ok else None


# --- Validation into graph records ---


def _validate_records(model: type[BaseModel], raw_items: Any, what: str) -> list:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise TypeError(f"'{what}' must be a list, got {type(raw_items).__name__}")
    records = []
    for raw in raw_items:
        try:
            records.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning("Dropping invalid %s entry %r: %s", what, raw, e.errors()[0]["msg"])
    return records


def _ids(raw_items: Any, what: str) -> list[str]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise TypeError(f"'{what}' must be a list, got {type(raw_items).__name__}")
    ids = []
    for item in raw_items:
        if isinstance(item, str) and item:
            ids.append(item)
        else:
            logger.warning("Dropping invalid id %r in %s", item, what)
    return ids


def assign_edge_ids(raw_edges: Any) -> Any:
    """Give every raw edge lacking an id the composite `edge_{source}_{target}_{index}`."""
    if not isinstance(raw_edges, list):
        return raw_edges
    assigned = []
    for index, raw in enumerate(raw_edges):
        if isinstance(raw, dict) and not raw.get("id"):
            raw = {**raw, "id": f"edge_{raw.get('source')}_{raw.get('target')}_{index}"}
        assigned.append(raw)
    return assigned


def _unique_by_id(records: list, what: str) -> list:
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id in seen:
            logger.warning("Dropping duplicate %s id %r", what, record.id)
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def normalize_graph(value: Any) -> Snapshot | None:
    """Validate a parsed `{nodes, edges}` payload. Returns None when there is no node list."""
    if not isinstance(value, dict) or not isinstance(value.get("nodes"), list):
        return None
    try:
        nodes = _validate_records(Node, value["nodes"], "node")
        edges = _validate_records(Edge, assign_edge_ids(value.get("edges")), "edge")
    except TypeError as e:
        logger.warning("Malformed graph payload: %s", e)
        return None
    return Snapshot(nodes=_unique_by_id(nodes, "node"), edges=_unique_by_id(edges, "edge"))


def normalize_delta(value: Any) -> Delta | None:
    """Validate a parsed delta payload. Returns None for anything that is not a well-formed delta."""
    if not isinstance(value, dict):
        return None
    try:
        return Delta(
            new_nodes=_validate_records(Node, value.get("newNodes"), "newNodes"),
            updated_nodes=_validate_records(NodePatch, value.get("updatedNodes"), "updatedNodes"),
            removed_node_ids=_ids(value.get("removedNodeIds"), "removedNodeIds"),
            new_edges=_validate_records(Edge, assign_edge_ids(value.get("newEdges")), "newEdges"),
            updated_edges=_validate_records(EdgePatch, value.get("updatedEdges"), "updatedEdges"),
            removed_edge_ids=_ids(value.get("removedEdgeIds"), "removedEdgeIds"),
        )
    except TypeError as e:
        logger.warning("Malformed delta payload: %s", e)
        return None


def normalize_inconsistencies(value: Any) -> list[Inconsistency]:
    if not isinstance(value, dict):
        return []
    try:
        return _validate_records(Inconsistency, value.get("inconsistencies"), "inconsistency")
    except TypeError as e:
        logger.warning("Malformed audit payload: %s", e)
        return []
