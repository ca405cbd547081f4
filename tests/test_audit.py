import asyncio

import pytest

from story_compass.audit import GraphNotGeneratedError, audit_graph, describe_snapshots
from story_compass.llm import GeneratorError
from story_compass.models import Edge, GraphData, Node, Project, Severity, Snapshot
from story_compass.prompts import PromptKind


@pytest.fixture
def audited_project(project):
    later = Snapshot(
        nodes=[Node(id="A", label="Alice", status="deceased"), Node(id="C", label="Carol")],
        edges=[Edge(id="e1", source="C", target="A", relation_type="hostile")],
    )
    project.graph_data = project.graph_data.model_copy(
        update={"snapshots": {**project.graph_data.snapshots, 3: later}}
    )
    project.chapter_blueprint = "Ch1: Carol arrives. Ch3: betrayal."
    return project


def test_describe_snapshots(audited_project):
    text = describe_snapshots(audited_project.graph_data)
    assert text.index("--- Chapter 0 snapshot ---") < text.index("--- Chapter 3 snapshot ---")
    assert "Nodes: Alice(active), Bob(active)" in text
    assert "Nodes: Alice(deceased), Carol(active)" in text
    assert "Relations: C-[hostile]-A" in text


def test_audit_records_findings(audited_project, fake_generator):
    fake_generator.queue(
        PromptKind.AUDIT,
        {
            "inconsistencies": [
                {
                    "type": "dead_character_active",
                    "severity": "error",
                    "nodeIds": ["A"],
                    "chapters": [3],
                    "message": "Alice acts after dying.",
                },
                {"type": "x", "severity": "catastrophic"},
            ]
        },
    )
    snapshots_before = audited_project.graph_data.snapshots

    graph_data = asyncio.run(audit_graph(audited_project, fake_generator))

    findings = graph_data.audit.inconsistencies
    assert len(findings) == 1
    assert findings[0].severity == Severity.ERROR
    assert findings[0].node_ids == ["A"]
    assert graph_data.audit.last_audit_at is not None
    assert graph_data.snapshots == snapshots_before
    assert audited_project.graph_data.audit.last_audit_at is None

    request = fake_generator.requests[0]
    assert request.params["chapterBlueprint"].startswith("Ch1")
    assert "--- Chapter 3 snapshot ---" in request.params["snapshotsText"]


def test_unparsable_audit_records_nothing(project, fake_generator):
    fake_generator.queue(PromptKind.AUDIT, "Everything looks fine to me!")
    graph_data = asyncio.run(audit_graph(project, fake_generator))
    assert graph_data.audit.inconsistencies == []
    assert graph_data.audit.last_audit_at is not None


def test_audit_requires_generated_graph(fake_generator):
    with pytest.raises(GraphNotGeneratedError):
        asyncio.run(audit_graph(Project(title="t", graph_data=GraphData()), fake_generator))
    assert fake_generator.requests == []


def test_generator_errors_propagate(project, fake_generator):
    fake_generator.queue(PromptKind.AUDIT, GeneratorError("rate limited"))
    with pytest.raises(GeneratorError):
        asyncio.run(audit_graph(project, fake_generator))
