from __future__ import annotations

from narramorph.modules.analysis.engagement import calculate_attractor_engagement
from narramorph.modules.analysis.path_analyzer import identify_significant_patterns
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.schemas import PrioritizedTransformation, TextTransformation

BASE_PRIORITIES: dict[str, tuple[int, str]] = {
    "replace": (80, "pattern"),
    "fragment": (75, "rhythm"),
    "expand": (60, "attractor"),
    "emphasize": (50, "temporal"),
    "metaComment": (40, "attractor"),
}
DEFAULT_PRIORITY = (50, "condition")

STRONG_SEQUENCE_STRENGTH = 0.7
ENGAGEMENT_BOOST_FLOOR = 50.0
TEMPORAL_FOCUS_FLOOR = 0.4
FAST_TRANSITION_RATIO = 0.6
DEEP_ENGAGEMENT_COUNT = 2


def conflict_group_for(transformation: TextTransformation) -> str:
    return f"selector-{transformation.selector}"


def resolve_conflicts(items: list[PrioritizedTransformation]) -> list[PrioritizedTransformation]:
    """Keep the highest-priority member of each conflict group, ordered by priority."""
    ungrouped: list[PrioritizedTransformation] = []
    winners: dict[str, PrioritizedTransformation] = {}
    for item in items:
        if not item.conflict_group:
            ungrouped.append(item)
            continue
        current = winners.get(item.conflict_group)
        if current is None or item.priority > current.priority:
            winners[item.conflict_group] = item
    resolved = [*ungrouped, *winners.values()]
    return sorted(resolved, key=lambda item: item.priority, reverse=True)


class PriorityResolver:
    """Assigns numeric priorities to candidate transformations and settles selector conflicts."""

    def base_priorities(self, transformations: list[TextTransformation]) -> list[PrioritizedTransformation]:
        prioritized: list[PrioritizedTransformation] = []
        for transformation in transformations:
            priority, source_type = BASE_PRIORITIES.get(transformation.type, DEFAULT_PRIORITY)
            prioritized.append(
                PrioritizedTransformation(
                    transformation=transformation,
                    priority=priority,
                    source_type=source_type,
                    conflict_group=conflict_group_for(transformation),
                )
            )
        return prioritized

    def prioritize(
        self,
        transformations: list[TextTransformation],
        path: ReaderPath | None = None,
        node: NodeState | None = None,
    ) -> list[PrioritizedTransformation]:
        prioritized = self.base_priorities(transformations)
        if path is None or node is None:
            return prioritized

        registry = {node.id: node}
        strong_sequence = next(
            (
                pattern
                for pattern in identify_significant_patterns(path, registry)
                if pattern.type == "sequence" and pattern.strength > STRONG_SEQUENCE_STRENGTH
            ),
            None,
        )
        engagements = calculate_attractor_engagement(path, registry)
        node_engagement = next((item for item in engagements if item.attractor in node.strange_attractors), None)

        layer_visits = sum(int(count) for count in path.temporal_layer_focus.values())
        layer_ratio = int(path.temporal_layer_focus.get(node.temporal_layer, 0)) / layer_visits if layer_visits else 0.0

        rhythm = path.reading_rhythm
        total_transitions = len(path.transitions)

        content = node.current_content or ""
        for item in prioritized:
            transformation = item.transformation
            if item.source_type == "pattern" and strong_sequence is not None:
                item.priority += round(strong_sequence.strength * 15)
            if (
                item.source_type == "attractor"
                and transformation.selector
                and transformation.selector in content
                and node_engagement is not None
                and node_engagement.engagement_score > ENGAGEMENT_BOOST_FLOOR
            ):
                item.priority += round((node_engagement.engagement_score - ENGAGEMENT_BOOST_FLOOR) / 5)
            if item.source_type == "temporal" and layer_ratio > TEMPORAL_FOCUS_FLOOR:
                item.priority += round((layer_ratio - TEMPORAL_FOCUS_FLOOR) * 20)
            if rhythm is not None and total_transitions > 0:
                if transformation.type == "fragment" and rhythm.fast_transitions / total_transitions > FAST_TRANSITION_RATIO:
                    item.priority += 10
                if transformation.type == "expand" and rhythm.deep_engagements > DEEP_ENGAGEMENT_COUNT:
                    item.priority += 5
        return prioritized

    def resolve(
        self,
        transformations: list[TextTransformation],
        path: ReaderPath | None = None,
        node: NodeState | None = None,
    ) -> list[TextTransformation]:
        return [item.transformation for item in resolve_conflicts(self.prioritize(transformations, path, node))]


class TransformationPriorityQueue:
    def __init__(self) -> None:
        self._items: list[PrioritizedTransformation] = []

    def enqueue(self, transformation: TextTransformation, priority: int, conflict_group: str | None = None) -> None:
        self._items.append(
            PrioritizedTransformation(transformation=transformation, priority=priority, conflict_group=conflict_group)
        )

    def enqueue_all(
        self,
        transformations: list[TextTransformation],
        priority: int,
        conflict_group: str | None = None,
    ) -> None:
        for transformation in transformations:
            self.enqueue(transformation, priority, conflict_group)

    def adjust_priority(self, selector: str, type_: str, adjustment: int) -> None:
        for item in self._items:
            if item.transformation.selector == selector and item.transformation.type == type_:
                item.priority += adjustment
                break

    def get_all(self) -> list[PrioritizedTransformation]:
        return sorted(self._items, key=lambda item: item.priority, reverse=True)

    def get_resolved_transformations(self) -> list[TextTransformation]:
        return [item.transformation for item in resolve_conflicts(self._items)]

    def clear(self) -> None:
        self._items = []

    def size(self) -> int:
        return len(self._items)

    def contains(self, selector: str, type_: str) -> bool:
        return any(
            item.transformation.selector == selector and item.transformation.type == type_ for item in self._items
        )
