import json

import pytest

from story_compass.llm import GeneratorError, NarrativeGenerator
from story_compass.models import Edge, GraphData, Node, Project, Snapshot
from story_compass.prompts import PromptKind
from story_compass.storage import ProjectStore


class FakeGenerator(NarrativeGenerator):
    """Replays queued responses per prompt kind; an Exception in the queue is raised instead."""

    def __init__(self, responses: dict[PromptKind, list] | None = None):
        self.responses = {kind: list(items) for kind, items in (responses or {}).items()}
        self.requests = []

    def queue(self, kind: PromptKind, *items) -> "FakeGenerator":
        self.responses.setdefault(kind, []).extend(items)
        return self

    async def generate(self, request):
        self.requests.append(request)
        queued = self.responses.get(request.kind)
        if not queued:
            raise GeneratorError(f"no response queued for {request.kind.value}")
        item = queued.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, (dict, list)):
            return json.dumps(item)
        return item


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def baseline_snapshot() -> Snapshot:
    return Snapshot(
        nodes=[
            Node(id="A", label="Alice", type="character", importance=8, faction="Guild"),
            Node(id="B", label="Bob", type="character", importance=5),
        ],
        edges=[],
    )


@pytest.fixture
def linked_snapshot() -> Snapshot:
    return Snapshot(
        nodes=[
            Node(id="A", label="Alice"),
            Node(id="B", label="Bob"),
        ],
        edges=[
            Edge(id="e_ab", source="A", target="B", relation_type="alliance", strength=6, events=["met at the inn"]),
        ],
    )


@pytest.fixture
def project(baseline_snapshot) -> Project:
    return Project(
        id="proj1",
        title="The Salt Road",
        character_dynamics="Alice leads the Guild. Bob is a drifter.",
        world_building="A desert trade route.",
        chapters={1: "Alice meets Carol.", 2: "Nothing much happens.", 3: "Carol betrays Alice."},
        graph_data=GraphData(snapshots={0: baseline_snapshot}, graph_generated=True),
    )


@pytest.fixture
def store(tmp_path):
    project_store = ProjectStore(db_path=tmp_path / "compass.duckdb")
    yield project_store
    project_store.close()
