from __future__ import annotations

from threading import Lock

from narramorph.modules.analysis.engagement import calculate_attractor_engagement
from narramorph.modules.analysis.focus import calculate_character_focus_intensity
from narramorph.modules.analysis.path_analyzer import analyze_path, analyze_path_patterns
from narramorph.modules.analysis.sequences import analyze_recursive_patterns
from narramorph.modules.conditions.schema import (
    AttractorAffinityCondition,
    AttractorEngagementCondition,
    CharacterFocusCondition,
    JourneyFingerprintCondition,
    RecursivePatternCondition,
    TemporalFocusCondition,
    TransformationCondition,
    TransformationRule,
    coerce_condition,
    condition_structure_key,
    freeze_structure,
)
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.utils.cache import LRUCache
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

PROGRESSION_PATTERN_STRENGTH = 0.3
CONTINUITY_PATTERN_STRENGTH = 0.5
RECENCY_WINDOW = 0.7


def has_character_bleed(path: ReaderPath, node: NodeState) -> bool:
    previous = path.previous_visit()
    if previous is None:
        return False
    return previous.character != node.character


def matches_pattern(pattern: list[str], sequence: list[str]) -> bool:
    if not pattern:
        return True
    width = len(pattern)
    for start in range(0, len(sequence) - width + 1):
        if sequence[start:start + width] == pattern:
            return True
    return False


def matches_journey_pattern(pattern: list[str], sequence: list[str]) -> bool:
    if not pattern:
        return True
    if len(sequence) < len(pattern):
        return False
    return sequence[-len(pattern):] == pattern


def path_key(path: ReaderPath) -> tuple:
    return (
        tuple(path.sequence),
        freeze_structure(path.revisit_patterns),
        tuple(freeze_structure(visit.model_dump()) for visit in path.detailed_visits),
        freeze_structure(path.character_focus),
        freeze_structure(path.temporal_layer_focus),
        freeze_structure(path.attractors_engaged),
        freeze_structure(path.endpoint_progress),
        tuple(freeze_structure(transition.model_dump()) for transition in path.transitions),
        None if path.reading_rhythm is None else freeze_structure(path.reading_rhythm.model_dump()),
    )


def node_key(node: NodeState) -> tuple:
    return (
        node.id,
        node.character,
        node.visit_count,
        node.temporal_value,
        tuple(node.strange_attractors),
    )


def _check_character_focus(cond: CharacterFocusCondition, path: ReaderPath, node: NodeState) -> bool:
    if cond.include_intensity:
        intensities = {item.character: item.intensity for item in calculate_character_focus_intensity(path)}
        return any(intensities.get(character, -1.0) >= cond.min_focus_ratio for character in cond.characters)
    total_visits = len(path.detailed_visits)
    if total_visits == 0:
        return False
    return any(
        int(path.character_focus.get(character, 0)) / total_visits >= cond.min_focus_ratio
        for character in cond.characters
    )


def _check_temporal_focus(cond: TemporalFocusCondition, path: ReaderPath, node: NodeState) -> bool:
    total_visits = len(path.detailed_visits)
    if total_visits == 0:
        return False
    basic = any(
        int(path.temporal_layer_focus.get(layer, 0)) / total_visits >= cond.min_focus_ratio
        for layer in cond.temporal_layers
    )
    if not basic or not cond.include_progression:
        return basic
    patterns = analyze_path_patterns(path, {node.id: node})
    return any(
        pattern.type == "temporal" and pattern.strength >= PROGRESSION_PATTERN_STRENGTH for pattern in patterns
    )


def _check_attractor_affinity(cond: AttractorAffinityCondition, path: ReaderPath, node: NodeState) -> bool:
    total = sum(int(count) for count in path.attractors_engaged.values())
    if total <= 0:
        return False
    basic = any(
        int(path.attractors_engaged.get(attractor, 0)) / total >= cond.min_affinity_ratio
        for attractor in cond.attractors
    )
    if not basic or not cond.include_thematic_continuity:
        return basic
    patterns = analyze_path_patterns(path, {node.id: node})
    return any(
        pattern.type == "thematic" and pattern.strength >= CONTINUITY_PATTERN_STRENGTH for pattern in patterns
    )


def _check_attractor_engagement(cond: AttractorEngagementCondition, path: ReaderPath, node: NodeState) -> bool:
    engagement = next(
        (item for item in calculate_attractor_engagement(path, {node.id: node}) if item.attractor == cond.attractor),
        None,
    )
    if engagement is None:
        return False
    if engagement.engagement_score < cond.min_engagement_score:
        return False
    return cond.trend_required == "any" or engagement.trend == cond.trend_required


def _check_recursive_pattern(cond: RecursivePatternCondition, path: ReaderPath, node: NodeState) -> bool:
    recent_threshold = len(path.sequence) * RECENCY_WINDOW
    for pattern in analyze_recursive_patterns(path):
        if pattern.strength < cond.min_pattern_strength or pattern.length > cond.max_pattern_length:
            continue
        if cond.require_recency and pattern.last_occurrence_index < recent_threshold:
            continue
        return True
    return False


def _check_journey_fingerprint(cond: JourneyFingerprintCondition, path: ReaderPath, node: NodeState) -> bool:
    fingerprint = analyze_path(path, {node.id: node}).fingerprint
    if cond.exploration_style and fingerprint.exploration_style != cond.exploration_style:
        return False
    if cond.temporal_preference and fingerprint.temporal_preference != cond.temporal_preference:
        return False
    if cond.narrative_approach and fingerprint.narrative_approach != cond.narrative_approach:
        return False
    if cond.min_complexity_index is not None and fingerprint.complexity_index < cond.min_complexity_index:
        return False
    if cond.min_focus_index is not None and fingerprint.focus_index < cond.min_focus_index:
        return False
    return True


def _basic_checks(condition: TransformationCondition, path: ReaderPath, node: NodeState) -> list[tuple[str, bool]]:
    """Outcome of every basic leaf present on ``condition``, in evaluation order."""
    checks: list[tuple[str, bool]] = []
    if condition.visit_count is not None:
        checks.append(("visit_count", node.visit_count >= condition.visit_count))
    if condition.previously_visited_nodes:
        visited = set(path.sequence)
        checks.append(
            ("previously_visited_nodes", all(node_id in visited for node_id in condition.previously_visited_nodes))
        )
    if condition.visit_pattern:
        checks.append(("visit_pattern", matches_pattern(list(condition.visit_pattern), list(path.sequence))))
    if condition.strange_attractors_engaged:
        checks.append(
            (
                "strange_attractors_engaged",
                all(int(path.attractors_engaged.get(tag, 0)) > 0 for tag in condition.strange_attractors_engaged),
            )
        )
    if condition.temporal_position:
        checks.append(("temporal_position", node.temporal_layer == condition.temporal_position))
    if condition.endpoint_progress is not None:
        requirement = condition.endpoint_progress
        progress = float(path.endpoint_progress.get(requirement.orientation, 0.0))
        checks.append(("endpoint_progress", progress >= requirement.min_value))
    if condition.revisit_pattern:
        checks.append(
            (
                "revisit_pattern",
                all(
                    int(path.revisit_patterns.get(item.node_id, 0)) >= item.min_visits
                    for item in condition.revisit_pattern
                ),
            )
        )
    if condition.character_bleed:
        checks.append(("character_bleed", has_character_bleed(path, node)))
    if condition.journey_pattern:
        checks.append(("journey_pattern", matches_journey_pattern(list(condition.journey_pattern), list(path.sequence))))
    return checks


_COMPOSITE_CHECKS = (
    ("character_focus", _check_character_focus),
    ("temporal_focus", _check_temporal_focus),
    ("attractor_affinity", _check_attractor_affinity),
    ("attractor_engagement", _check_attractor_engagement),
    ("recursive_pattern", _check_recursive_pattern),
    ("journey_fingerprint", _check_journey_fingerprint),
)


class ConditionEvaluator:
    """Evaluates condition trees against a reader path and a target node.

    Results are memoized in an LRU cache keyed by the condition structure and
    the slices of path and node state a condition can read.
    """

    def __init__(self, *, cache_capacity: int = 500) -> None:
        self._cache = LRUCache(cache_capacity)
        self._lock = Lock()
        self.rule_set_version = 0
        self.evaluations = 0
        self.cache_hits = 0

    def evaluate(
        self,
        condition: TransformationCondition | dict | None,
        path: ReaderPath,
        node: NodeState,
    ) -> bool:
        return self._evaluate(coerce_condition(condition), path, node, (path_key(path), node_key(node)))

    def _evaluate(
        self,
        condition: TransformationCondition,
        path: ReaderPath,
        node: NodeState,
        state_key: tuple,
    ) -> bool:
        with self._lock:
            self.evaluations += 1
        if condition.is_empty():
            return True

        cache_key = (condition_structure_key(condition), state_key)
        cached = self._cache.get(cache_key)
        if cached is not None:
            with self._lock:
                self.cache_hits += 1
            logger.debug("condition cache hit node=%s", node.id)
            return cached

        result = self._evaluate_uncached(condition, path, node, state_key)
        self._cache.put(cache_key, result)
        return result

    def _evaluate_uncached(
        self,
        condition: TransformationCondition,
        path: ReaderPath,
        node: NodeState,
        state_key: tuple,
    ) -> bool:
        if condition.all_of:
            for child in condition.all_of:
                if not self._evaluate(child, path, node, state_key):
                    return False
        if condition.any_of:
            if not any(self._evaluate(child, path, node, state_key) for child in condition.any_of):
                return False
        if condition.not_ is not None:
            if self._evaluate(condition.not_, path, node, state_key):
                return False

        for _, passed in _basic_checks(condition, path, node):
            if not passed:
                return False
        for field_name, check in _COMPOSITE_CHECKS:
            cond = getattr(condition, field_name)
            if cond is not None and not check(cond, path, node):
                return False
        return True

    def evaluate_trace(
        self,
        condition: TransformationCondition | dict | None,
        path: ReaderPath,
        node: NodeState,
    ) -> tuple[bool, dict]:
        """Evaluate without the cache and report how each part decided."""
        return self._trace(coerce_condition(condition), path, node)

    def _trace(self, condition: TransformationCondition, path: ReaderPath, node: NodeState) -> tuple[bool, dict]:
        if condition.is_empty():
            return True, {"op": "empty", "result": True}

        children: list[dict] = []
        result = True
        if condition.all_of:
            child_traces = []
            group_result = True
            for child in condition.all_of:
                child_result, child_trace = self._trace(child, path, node)
                child_traces.append(child_trace)
                if not child_result:
                    group_result = False
                    break
            children.append({"op": "allOf", "children": child_traces, "result": group_result})
            result = result and group_result
        if result and condition.any_of:
            child_traces = []
            group_result = False
            for child in condition.any_of:
                child_result, child_trace = self._trace(child, path, node)
                child_traces.append(child_trace)
                if child_result:
                    group_result = True
                    break
            children.append({"op": "anyOf", "children": child_traces, "result": group_result})
            result = result and group_result
        if result and condition.not_ is not None:
            inner_result, inner_trace = self._trace(condition.not_, path, node)
            children.append({"op": "not", "children": [inner_trace], "result": not inner_result})
            result = not inner_result

        if result:
            for name, passed in _basic_checks(condition, path, node):
                children.append({"op": name, "result": passed})
                if not passed:
                    result = False
                    break
        if result:
            for field_name, check in _COMPOSITE_CHECKS:
                cond = getattr(condition, field_name)
                if cond is None:
                    continue
                passed = check(cond, path, node)
                children.append({"op": field_name, "result": passed})
                if not passed:
                    result = False
                    break
        return result, {"op": "condition", "children": children, "result": result}

    def evaluate_rule(self, rule: TransformationRule, path: ReaderPath, node: NodeState) -> list[TextTransformation]:
        if self.evaluate(rule.condition, path, node):
            return list(rule.transformations)
        return []

    def evaluate_all_transformations(
        self,
        rules: list[TransformationRule],
        path: ReaderPath,
        node: NodeState,
    ) -> list[TextTransformation]:
        applicable: list[TextTransformation] = []
        for rule in rules:
            applicable.extend(self.evaluate_rule(rule, path, node))
        return applicable

    def invalidate(self) -> None:
        self._cache.clear()
        with self._lock:
            self.rule_set_version += 1
        logger.debug("condition cache invalidated version=%s", self.rule_set_version)

    def stats(self) -> dict:
        with self._lock:
            evaluations = self.evaluations
            cache_hits = self.cache_hits
            version = self.rule_set_version
        return {
            "evaluations": evaluations,
            "cache_hits": cache_hits,
            "rule_set_version": version,
            "cache": self._cache.stats(),
        }
