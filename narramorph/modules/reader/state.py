from __future__ import annotations

from narramorph.modules.reader.models import (
    LifecycleThresholds,
    NodeState,
    NodeTransition,
    NodeVisit,
    ReaderPath,
    ReadingRhythm,
    temporal_label,
)

FAST_TRANSITION_THRESHOLD_MS = 30_000
DEEP_ENGAGEMENT_THRESHOLD_MS = 120_000


def lifecycle_for_visit_count(visit_count: int, thresholds: LifecycleThresholds | None = None) -> str:
    limits = thresholds or LifecycleThresholds()
    count = int(visit_count or 0)
    if count <= 0:
        return "unvisited"
    if count == 1:
        return "visited"
    if count >= limits.fragmented:
        return "fragmented"
    if count >= limits.complex:
        return "complex"
    if count >= limits.revisit:
        return "revisited"
    return "visited"


def register_node_visit(node: NodeState) -> NodeState:
    visit_count = node.visit_count + 1
    return node.model_copy(
        update={
            "visit_count": visit_count,
            "current_state": lifecycle_for_visit_count(visit_count, node.transformation_thresholds),
        }
    )


def record_visit(path: ReaderPath, node: NodeState, *, duration_ms: float | None = None) -> ReaderPath:
    """Return a new path snapshot with ``node`` appended to the history.

    ``duration_ms`` is the time spent on the previous node; it feeds the
    transition record and the reading-rhythm counters.
    """
    layer = temporal_label(node.temporal_value)
    sequence = [*path.sequence, node.id]
    revisit_count = int(path.revisit_patterns.get(node.id, 0)) + 1

    revisit_patterns = dict(path.revisit_patterns)
    revisit_patterns[node.id] = revisit_count
    character_focus = dict(path.character_focus)
    character_focus[node.character] = int(character_focus.get(node.character, 0)) + 1
    temporal_layer_focus = dict(path.temporal_layer_focus)
    temporal_layer_focus[layer] = int(temporal_layer_focus.get(layer, 0)) + 1

    detailed_visits = [visit.model_copy(deep=True) for visit in path.detailed_visits]
    transitions = [transition.model_copy(deep=True) for transition in path.transitions]
    rhythm = path.reading_rhythm.model_copy() if path.reading_rhythm is not None else None

    if path.sequence:
        transitions.append(
            NodeTransition(from_node_id=path.sequence[-1], to_node_id=node.id, duration_ms=duration_ms)
        )
        if duration_ms is not None:
            if detailed_visits:
                detailed_visits[-1] = detailed_visits[-1].model_copy(update={"duration_ms": float(duration_ms)})
            rhythm = rhythm or ReadingRhythm()
            if duration_ms < FAST_TRANSITION_THRESHOLD_MS:
                rhythm = rhythm.model_copy(update={"fast_transitions": rhythm.fast_transitions + 1})
            if duration_ms >= DEEP_ENGAGEMENT_THRESHOLD_MS:
                rhythm = rhythm.model_copy(update={"deep_engagements": rhythm.deep_engagements + 1})

    detailed_visits.append(
        NodeVisit(
            node_id=node.id,
            character=node.character,
            temporal_layer=layer,
            engaged_attractors=[],
            index=len(sequence) - 1,
            revisit_count=revisit_count,
            temporal_value=node.temporal_value,
        )
    )

    return path.model_copy(
        update={
            "sequence": sequence,
            "revisit_patterns": revisit_patterns,
            "detailed_visits": detailed_visits,
            "transitions": transitions,
            "character_focus": character_focus,
            "temporal_layer_focus": temporal_layer_focus,
            "reading_rhythm": rhythm,
        }
    )


def engage_attractor(path: ReaderPath, attractor: str) -> ReaderPath:
    tag = str(attractor or "").strip()
    if not tag:
        return path
    attractors_engaged = dict(path.attractors_engaged)
    attractors_engaged[tag] = int(attractors_engaged.get(tag, 0)) + 1

    detailed_visits = list(path.detailed_visits)
    if detailed_visits and tag not in detailed_visits[-1].engaged_attractors:
        last = detailed_visits[-1]
        detailed_visits[-1] = last.model_copy(update={"engaged_attractors": [*last.engaged_attractors, tag]})

    transitions = list(path.transitions)
    if transitions and tag not in transitions[-1].attractors_engaged:
        last_transition = transitions[-1]
        transitions[-1] = last_transition.model_copy(
            update={"attractors_engaged": [*last_transition.attractors_engaged, tag]}
        )

    return path.model_copy(
        update={
            "attractors_engaged": attractors_engaged,
            "detailed_visits": detailed_visits,
            "transitions": transitions,
        }
    )


def update_endpoint_progress(path: ReaderPath, orientation: str, value: float) -> ReaderPath:
    progress = dict(path.endpoint_progress)
    progress[str(orientation)] = max(0.0, min(100.0, float(value)))
    return path.model_copy(update={"endpoint_progress": progress})


def visit_node(
    path: ReaderPath,
    node: NodeState,
    *,
    attractors: list[str] | None = None,
    duration_ms: float | None = None,
) -> tuple[ReaderPath, NodeState]:
    next_path = record_visit(path, node, duration_ms=duration_ms)
    for attractor in attractors or []:
        next_path = engage_attractor(next_path, attractor)
    return next_path, register_node_visit(node)
