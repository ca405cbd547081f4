"""Chapter-indexed snapshot lookups. Stored snapshots are never replaced, only added."""

from collections.abc import Mapping

from .models import GraphData, Snapshot


class SnapshotExistsError(ValueError):
    """Raised when a chapter already has a stored snapshot."""


def snapshot_chapters(snapshots: Mapping[int, Snapshot] | None) -> list[int]:
    if not snapshots:
        return []
    return sorted(int(k) for k in snapshots)


def nearest_at_or_before(snapshots: Mapping[int, Snapshot] | None, chapter: int) -> Snapshot | None:
    """Snapshot stored at the greatest chapter key <= `chapter`, or None."""
    best = None
    for key in snapshot_chapters(snapshots):
        if key > chapter:
            break
        best = key
    return snapshots[best] if best is not None else None


def latest_snapshot(snapshots: Mapping[int, Snapshot] | None) -> Snapshot | None:
    chapters = snapshot_chapters(snapshots)
    return snapshots[chapters[-1]] if chapters else None


def with_snapshot(graph_data: GraphData, chapter: int, snapshot: Snapshot) -> GraphData:
    """Return a copy of `graph_data` holding `snapshot` at `chapter`."""
    if chapter < 0:
        raise ValueError(f"Chapter index must be non-negative, got {chapter}")
    if chapter in graph_data.snapshots:
        raise SnapshotExistsError(f"Chapter {chapter} already has a stored snapshot")
    snapshots = {**graph_data.snapshots, chapter: snapshot}
    return graph_data.model_copy(update={"snapshots": snapshots})
