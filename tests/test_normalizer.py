from story_compass.models import NodeStatus, RelationType
from story_compass.normalizer import (
    ParseFailure,
    extract_json,
    normalize_delta,
    normalize_graph,
    normalize_inconsistencies,
    parse_json_response,
)


def test_recovers_object_after_chatter_and_fence():
    assert extract_json('Here you go:\n```json\n{"a":1}\n```') == {"a": 1}


def test_strips_leading_and_trailing_fence():
    result = parse_json_response('```json\n{"nodes": []}\n```')
    assert result.ok
    assert result.value == {"nodes": []}


def test_plain_json_parses_directly():
    assert extract_json('{"a": {"b": [1, 2]}}') == {"a": {"b": [1, 2]}}


def test_trailing_commentary_is_ignored():
    text = 'Sure! {"newNodes": [{"id": "x"}]} Let me know if you need more.'
    assert extract_json(text) == {"newNodes": [{"id": "x"}]}


def test_unbalanced_braces_yield_none():
    result = parse_json_response("{a:1")
    assert result.value is None
    assert result.failure == ParseFailure.UNBALANCED_BRACES
    assert extract_json("{a:1") is None


def test_balanced_but_invalid_candidate():
    result = parse_json_response("note {a:1} end")
    assert result.failure == ParseFailure.INVALID_JSON


def test_no_brace_and_empty_input():
    assert parse_json_response("no json here").failure == ParseFailure.NO_OPENING_BRACE
    assert parse_json_response("").failure == ParseFailure.EMPTY_INPUT
    assert parse_json_response(None).failure == ParseFailure.EMPTY_INPUT


def test_normalize_graph_requires_node_list():
    assert normalize_graph({"edges": []}) is None
    assert normalize_graph([1, 2]) is None
    assert normalize_graph(None) is None


def test_normalize_graph_assigns_edge_ids_and_defaults():
    snapshot = normalize_graph(
        {
            "nodes": [{"id": "a", "label": "A"}, {"id": "b", "label": "B", "firstAppearance": None}],
            "edges": [
                {"source": "a", "target": "b", "relationType": "family"},
                {"id": "kept", "source": "b", "target": "a"},
                {"source": "b", "target": "a"},
            ],
        }
    )
    assert [n.first_appearance for n in snapshot.nodes] == [0, 0]
    assert [e.id for e in snapshot.edges] == ["edge_a_b_0", "kept", "edge_b_a_2"]
    assert snapshot.edges[0].relation_type == RelationType.FAMILY


def test_normalize_graph_rejects_unknown_enum_values():
    snapshot = normalize_graph(
        {
            "nodes": [
                {"id": "a", "label": "A", "status": "zombie"},
                {"id": "b", "label": "B", "status": "deceased"},
            ],
            "edges": [{"source": "a", "target": "b", "relationType": "rivalry"}],
        }
    )
    assert [n.id for n in snapshot.nodes] == ["b"]
    assert snapshot.nodes[0].status == NodeStatus.DECEASED
    assert snapshot.edges == []


def test_normalize_graph_drops_duplicate_ids():
    snapshot = normalize_graph({"nodes": [{"id": "a", "label": "first"}, {"id": "a", "label": "second"}]})
    assert len(snapshot.nodes) == 1
    assert snapshot.nodes[0].label == "first"


def test_importance_and_strength_are_clamped():
    snapshot = normalize_graph(
        {
            "nodes": [{"id": "a", "importance": 15}, {"id": "b", "importance": 0}],
            "edges": [{"source": "a", "target": "b", "strength": 42}],
        }
    )
    assert [n.importance for n in snapshot.nodes] == [10, 1]
    assert snapshot.edges[0].strength == 10


def test_normalize_delta_accepts_partial_payload():
    delta = normalize_delta({"newNodes": [{"id": "c", "label": "Carol"}], "removedEdgeIds": ["e1"]})
    assert [n.id for n in delta.new_nodes] == ["c"]
    assert delta.removed_edge_ids == ["e1"]
    assert delta.updated_nodes == []
    assert not delta.is_empty()


def test_normalize_delta_empty_object_is_empty_delta():
    delta = normalize_delta({})
    assert delta is not None
    assert delta.is_empty()


def test_normalize_delta_rejects_non_objects_and_non_lists():
    assert normalize_delta("nope") is None
    assert normalize_delta([{"newNodes": []}]) is None
    assert normalize_delta({"newNodes": {"id": "c"}}) is None


def test_normalize_delta_drops_invalid_patches_and_ids():
    delta = normalize_delta(
        {
            "updatedNodes": [{"id": "a", "changes": {"status": "deceased"}}, {"changes": {}}],
            "removedNodeIds": ["b", 7, ""],
        }
    )
    assert [p.id for p in delta.updated_nodes] == ["a"]
    assert delta.removed_node_ids == ["b"]


def test_normalize_inconsistencies():
    items = normalize_inconsistencies(
        {
            "inconsistencies": [
                {"type": "dead_reappear", "severity": "error", "nodeIds": ["a"], "chapters": [2, "4"], "message": "a is back"},
                {"type": "odd", "severity": "catastrophic"},
            ]
        }
    )
    assert len(items) == 1
    assert items[0].chapters == [2, 4]
    assert items[0].node_ids == ["a"]
    assert normalize_inconsistencies(None) == []


def test_bad_score_drops_only_that_node():
    delta = normalize_delta({"newNodes": [{"id": "C"}, {"id": "D", "importance": [7]}]})
    assert delta is not None
    assert [n.id for n in delta.new_nodes] == ["C"]


def test_non_finite_importance_is_rejected():
    result = parse_json_response('{"newNodes":[{"id":"D","importance":Infinity},{"id":"E","importance":"7"}]}')
    delta = normalize_delta(result.value)
    assert [(n.id, n.importance) for n in delta.new_nodes] == [("E", 7)]


def test_scalar_traits_and_events_drop_the_record():
    snapshot = normalize_graph(
        {
            "nodes": [{"id": "a", "traits": 5}, {"id": "b", "traits": "brave"}],
            "edges": [
                {"id": "e1", "source": "a", "target": "b", "events": 5},
                {"id": "e2", "source": "b", "target": "a", "strength": "high"},
                {"id": "e3", "source": "b", "target": "a", "events": ["met"]},
            ],
        }
    )
    assert [n.id for n in snapshot.nodes] == ["b"]
    assert snapshot.nodes[0].traits == ["brave"]
    assert [e.id for e in snapshot.edges] == ["e3"]
