from __future__ import annotations

from statistics import pstdev

from narramorph.modules.analysis.models import TemporalJumpingPattern
from narramorph.modules.reader.models import (
    NodeState,
    NodeVisit,
    ReaderPath,
    TEMPORAL_BUCKET_MIDPOINTS,
    TEMPORAL_LABELS,
)

DIRECTION_DOMINANCE = 1.5


def _visit_temporal_value(visit: NodeVisit, nodes: dict[str, NodeState]) -> int:
    if visit.temporal_value is not None:
        return int(visit.temporal_value)
    node = nodes.get(visit.node_id)
    if node is not None:
        return int(node.temporal_value)
    return TEMPORAL_BUCKET_MIDPOINTS[visit.temporal_layer]


def temporal_values(path: ReaderPath, nodes: dict[str, NodeState]) -> list[int]:
    return [_visit_temporal_value(visit, nodes) for visit in path.detailed_visits]


def _empty_pattern() -> TemporalJumpingPattern:
    return TemporalJumpingPattern(
        total_jumps=0,
        forward_jumps=0,
        backward_jumps=0,
        preferred_jump_direction="mixed",
        average_jump_distance=0.0,
        max_jump_distance=0,
        jump_frequency=0.0,
        temporal_anchoring={layer: 0.0 for layer in TEMPORAL_LABELS},
        volatility=0.0,
    )


def analyze_temporal_jumping(path: ReaderPath, nodes: dict[str, NodeState]) -> TemporalJumpingPattern:
    """Summarize how the reader moves along the timeline between consecutive visits."""
    visits = path.detailed_visits
    if not visits:
        return _empty_pattern()

    anchoring = {layer: 0.0 for layer in TEMPORAL_LABELS}
    for visit in visits:
        anchoring[visit.temporal_layer] += 1
    anchoring = {layer: round(count / len(visits), 6) for layer, count in anchoring.items()}

    values = temporal_values(path, nodes)
    deltas = [later - earlier for earlier, later in zip(values, values[1:])]
    jumps = [delta for delta in deltas if delta != 0]
    if not jumps:
        pattern = _empty_pattern()
        pattern.temporal_anchoring = anchoring
        return pattern

    forward = sum(1 for delta in jumps if delta > 0)
    backward = len(jumps) - forward
    if forward > backward * DIRECTION_DOMINANCE:
        direction = "forward"
    elif backward > forward * DIRECTION_DOMINANCE:
        direction = "backward"
    else:
        direction = "mixed"

    distances = [abs(delta) for delta in jumps]
    return TemporalJumpingPattern(
        total_jumps=len(jumps),
        forward_jumps=forward,
        backward_jumps=backward,
        preferred_jump_direction=direction,
        average_jump_distance=round(sum(distances) / len(distances), 6),
        max_jump_distance=max(distances),
        jump_frequency=round(len(jumps) / len(deltas), 6),
        temporal_anchoring=anchoring,
        volatility=round(min(1.0, pstdev(distances) / 4), 6),
    )
