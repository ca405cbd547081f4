import json

import pytest
from typer.testing import CliRunner

from story_compass.cli import app
from story_compass.commands import graph as graph_commands
from story_compass.prompts import PromptKind
from story_compass.storage import ProjectStore

runner = CliRunner()

BASELINE = {
    "nodes": [
        {"id": "A", "label": "Alice", "importance": 8, "faction": "Guild"},
        {"id": "B", "label": "Bob"},
        {"id": "X", "label": "Xander", "importance": 2},
    ],
    "edges": [{"id": "e_ab", "source": "A", "target": "B", "relationType": "alliance"}],
}


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "cli.duckdb")


@pytest.fixture
def cli_generator(monkeypatch, fake_generator):
    monkeypatch.setattr(graph_commands, "get_generator", lambda: fake_generator)
    return fake_generator


def _invoke(*args):
    return runner.invoke(app, list(args))


def _load(db, project_id):
    store = ProjectStore(db)
    try:
        return store.get(project_id)
    finally:
        store.close()


@pytest.fixture
def seeded(tmp_path, db):
    result = _invoke("project", "create", "--title", "Salt Road", "--id", "salt", "--db", db)
    assert result.exit_code == 0, result.output
    roster = tmp_path / "roster.txt"
    roster.write_text("Alice leads the Guild.", encoding="utf-8")
    result = _invoke("project", "set-material", "salt", "--character-dynamics", str(roster), "--db", db)
    assert result.exit_code == 0, result.output
    for number, text in ((1, "Alice meets Carol."), (2, "Bob leaves town.")):
        chapter_file = tmp_path / f"ch{number}.txt"
        chapter_file.write_text(text, encoding="utf-8")
        result = _invoke("project", "add-chapter", "salt", str(number), str(chapter_file), "--db", db)
        assert result.exit_code == 0, result.output
    return "salt"


def test_project_commands(seeded, db):
    result = _invoke("project", "list", "--db", db)
    assert result.exit_code == 0
    assert "salt" in result.output

    result = _invoke("project", "show", seeded, "--db", db)
    assert "Chapters: 1, 2" in result.output
    assert "Graph generated: no" in result.output

    project = _load(db, seeded)
    assert project.character_dynamics == "Alice leads the Guild."
    assert project.chapters[2] == "Bob leaves town."

    duplicate = _invoke("project", "create", "--title", "Again", "--id", "salt", "--db", db)
    assert duplicate.exit_code == 1

    assert _invoke("project", "delete", seeded, "--yes", "--db", db).exit_code == 0
    assert _load(db, seeded) is None
    assert _invoke("project", "show", seeded, "--db", db).exit_code == 1


def test_graph_workflow(seeded, db, cli_generator, tmp_path):
    cli_generator.queue(PromptKind.BASELINE, BASELINE)
    cli_generator.queue(
        PromptKind.CHAPTER_DELTA,
        {"newNodes": [{"id": "C", "label": "Carol"}], "newEdges": [{"id": "e_ac", "source": "A", "target": "C"}]},
        "no idea",
    )

    result = _invoke("graph", "baseline", seeded, "--db", db)
    assert result.exit_code == 0, result.output
    assert "Baseline stored: 3 nodes, 1 edges." in result.output

    result = _invoke("graph", "advance", seeded, "--db", db)
    assert result.exit_code == 0, result.output
    assert "Snapshots stored for chapters: 1" in result.output
    assert "No snapshot for chapters: 2" in result.output

    result = _invoke("graph", "advance", seeded, "--db", db)
    # chapter 2 stays pending and is retried
    assert result.exit_code == 0

    result = _invoke("graph", "show", seeded, "--chapter", "2", "--json", "--db", db)
    assert result.exit_code == 0, result.output
    snapshot = json.loads(result.output)
    assert [n["id"] for n in snapshot["nodes"]] == ["A", "B", "X", "C"]
    assert snapshot["edges"][1]["relationType"] == "neutral"

    result = _invoke("graph", "show", seeded, "--chapter", "0", "--json", "--db", db)
    assert len(json.loads(result.output)["nodes"]) == 3

    result = _invoke("graph", "inspect", seeded, "--db", db)
    assert "Nodes: 4  Edges: 2  Components: 2" in result.output
    assert "Most connected: A (2)" in result.output
    assert "Isolated nodes: X" in result.output

    output = tmp_path / "graph.html"
    result = _invoke("graph", "export", seeded, "-o", str(output), "--db", db)
    assert result.exit_code == 0, result.output
    assert "Carol" in output.read_text(encoding="utf-8")


def test_baseline_requires_force(seeded, db, cli_generator):
    cli_generator.queue(PromptKind.BASELINE, BASELINE, {"nodes": [{"id": "Z"}], "edges": []})
    assert _invoke("graph", "baseline", seeded, "--db", db).exit_code == 0

    result = _invoke("graph", "baseline", seeded, "--db", db)
    assert result.exit_code == 1
    assert "--force" in result.output

    result = _invoke("graph", "baseline", seeded, "--force", "--db", db)
    assert result.exit_code == 0
    assert list(_load(db, seeded).graph_data.snapshots[0].node_ids()) == ["Z"]


def test_baseline_failure_leaves_project_untouched(seeded, db, cli_generator):
    cli_generator.queue(PromptKind.BASELINE, "I refuse.")
    result = _invoke("graph", "baseline", seeded, "--db", db)
    assert result.exit_code == 1
    assert "Baseline unavailable" in result.output
    assert not _load(db, seeded).graph_data.graph_generated


def test_advance_without_baseline(seeded, db, cli_generator):
    result = _invoke("graph", "advance", seeded, "--db", db)
    assert result.exit_code == 1
    assert cli_generator.requests == []


def test_audit_and_chapter_graph(seeded, db, cli_generator):
    cli_generator.queue(PromptKind.BASELINE, BASELINE)
    cli_generator.queue(
        PromptKind.AUDIT,
        {"inconsistencies": [{"type": "orphan", "severity": "info", "nodeIds": ["X"], "message": "Xander never appears."}]},
    )
    cli_generator.queue(PromptKind.CHAPTER_GRAPH, {"nodes": [{"id": "C", "label": "Carol"}], "edges": []})
    assert _invoke("graph", "baseline", seeded, "--db", db).exit_code == 0

    result = _invoke("graph", "audit", seeded, "--db", db)
    assert result.exit_code == 0, result.output
    assert "orphan" in result.output

    result = _invoke("graph", "chapter-graph", seeded, "1", "--db", db)
    assert result.exit_code == 0, result.output
    assert "Chapter 1 graph: 1 nodes, 0 edges." in result.output

    project = _load(db, seeded)
    assert project.graph_data.audit.inconsistencies[0].node_ids == ["X"]
    assert project.chapter_graphs[1].nodes[0].label == "Carol"
    assert list(project.graph_data.snapshots) == [0]


def test_commands_close_the_store(seeded, db, monkeypatch):
    closed = []
    original_close = ProjectStore.close

    def tracking_close(self):
        closed.append(self.db_path)
        original_close(self)

    monkeypatch.setattr(ProjectStore, "close", tracking_close)

    assert _invoke("project", "show", seeded, "--db", db).exit_code == 0
    assert _invoke("project", "show", "missing", "--db", db).exit_code == 1
    assert _invoke("graph", "advance", seeded, "--db", db).exit_code == 1
    assert len(closed) == 3
