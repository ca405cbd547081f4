"""Story Compass: chapter-versioned relationship graphs for generated novels."""

__all__ = [
    "__version__",
    "apply_delta",
    "nearest_at_or_before",
    "parse_json_response",
    "project_snapshot",
]
__version__ = "0.1.0"

from .chart import project_snapshot
from .graph_logic import apply_delta
from .normalizer import parse_json_response
from .snapshots import nearest_at_or_before
