from __future__ import annotations

from collections.abc import Callable

from narramorph.modules.analysis.engagement import calculate_attractor_engagement
from narramorph.modules.analysis.models import AttractorEngagement, PatternBasedCondition, ReadingPattern
from narramorph.modules.analysis.path_analyzer import analyze_path_patterns, create_transformation_conditions
from narramorph.modules.conditions.evaluator import ConditionEvaluator, path_key
from narramorph.modules.conditions.schema import TransformationCondition, TransformationRule
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.utils.cache import TTLCache
from narramorph.utils.logging import get_logger
from narramorph.utils.time import monotonic_s

logger = get_logger(__name__)

SIGNIFICANT_ENGAGEMENT_THRESHOLD = 50.0
THEMATIC_CONDITION_STRENGTH = 0.6

ATTRACTOR_DESCRIPTIONS: dict[str, str] = {
    "recursion-pattern": "Patterns that repeat and reference themselves",
    "memory-fragment": "Isolated pieces of recollected experience",
    "verification-ritual": "Processes that confirm identity or authenticity",
    "identity-pattern": "Signatures of self and personhood",
    "recursion-chamber": "Spaces where patterns reflect inward infinitely",
    "process-language": "Communication through action and behavior",
    "autonomous-fragment": "Pieces that develop independence",
    "quantum-perception": "Observation that creates multiple realities",
    "distributed-consciousness": "Mind extended across multiple entities",
    "recursive-loop": "Cycles that feed back into themselves",
    "quantum-uncertainty": "Multiple states existing simultaneously",
    "continuity-interface": "Connections between disparate states of being",
    "system-decay": "Entropy and breakdown of order",
    "quantum-transformation": "Change through probability collapse",
    "memory-artifact": "Objects that hold experiential records",
    "recursive-symbol": "Signs that represent themselves",
    "recognition-pattern": "Moments of identity realization",
    "memory-sphere": "Contained collections of experiences",
    "quantum-déjà-vu": "Recognition across probability timelines",
    "quantum-choice": "Decision points that split reality",
}

ATTRACTOR_THEME_GROUPS: dict[str, tuple[str, ...]] = {
    "identity": ("identity-pattern", "verification-ritual", "recognition-pattern", "recursive-symbol"),
    "memory": ("memory-fragment", "memory-artifact", "memory-sphere", "quantum-déjà-vu"),
    "recursion": ("recursion-pattern", "recursion-chamber", "recursive-loop", "recursive-symbol"),
    "quantum": (
        "quantum-perception",
        "quantum-uncertainty",
        "quantum-transformation",
        "quantum-déjà-vu",
        "quantum-choice",
    ),
    "consciousness": (
        "distributed-consciousness",
        "autonomous-fragment",
        "process-language",
        "continuity-interface",
    ),
    "entropy": ("system-decay", "autonomous-fragment", "memory-fragment"),
}


def attractor_phrase(attractor: str) -> str:
    """Readable form of a tag: only the first hyphen becomes a space."""
    return attractor.replace("-", " ", 1)


def registry_key(nodes: dict[str, NodeState]) -> tuple:
    return tuple(
        sorted(
            (node_id, node.character, node.temporal_value, tuple(node.strange_attractors))
            for node_id, node in nodes.items()
        )
    )


def calculate_theme_group_engagement(engagements: list[AttractorEngagement]) -> dict[str, float]:
    scores = {theme: 0.0 for theme in ATTRACTOR_THEME_GROUPS}
    for engagement in engagements:
        for theme, members in ATTRACTOR_THEME_GROUPS.items():
            if engagement.attractor in members:
                scores[theme] += engagement.engagement_score
    top = max(scores.values(), default=0.0)
    if top > 0:
        scores = {theme: score / top * 100 for theme, score in scores.items()}
    return scores


def transformations_for_pattern_condition(pattern_condition: PatternBasedCondition) -> list[TextTransformation]:
    kind = pattern_condition.type
    if kind == "visit_pattern":
        return [TextTransformation(type="emphasize", selector="pattern recognition", emphasis="bold")]
    if kind == "character_focus":
        return [TextTransformation(type="metaComment", selector="perspective", replacement="character perspective shift")]
    if kind == "temporal_focus":
        return [TextTransformation(type="metaComment", selector="time", replacement="temporal layer shift")]
    if kind == "reading_rhythm":
        if pattern_condition.rhythm == "deep":
            return [TextTransformation(type="expand", selector="thought", replacement="deeper contemplation")]
        return [TextTransformation(type="emphasize", selector="key", emphasis="bold")]
    if kind in {"attractor_affinity", "attractor_engagement"}:
        attractors = pattern_condition.condition.strange_attractors_engaged or []
        if not attractors:
            return []
        attractor = attractors[0]
        phrase = attractor_phrase(attractor)
        return [
            TextTransformation(
                type="metaComment",
                selector=phrase,
                replacement=ATTRACTOR_DESCRIPTIONS.get(attractor, "thematic element"),
            ),
            TextTransformation(type="emphasize", selector=phrase, emphasis="color"),
        ]
    return []


class AttractorEngagementSystem:
    """Theme-level view over attractor engagement, with short-lived result caches."""

    def __init__(
        self,
        evaluator: ConditionEvaluator,
        *,
        cache_capacity: int = 64,
        cache_ttl_s: float = 5.0,
        significant_engagement: float = SIGNIFICANT_ENGAGEMENT_THRESHOLD,
        clock: Callable[[], float] = monotonic_s,
    ) -> None:
        self.evaluator = evaluator
        self.significant_engagement = float(significant_engagement)
        self._engagement_cache = TTLCache(cache_capacity, cache_ttl_s, clock=clock)
        self._pattern_cache = TTLCache(cache_capacity, cache_ttl_s, clock=clock)

    def calculate_attractor_engagement(self, path: ReaderPath, nodes: dict[str, NodeState]) -> list[AttractorEngagement]:
        key = (path_key(path), registry_key(nodes))
        cached = self._engagement_cache.get(key)
        if cached is not None:
            return list(cached)
        engagements = calculate_attractor_engagement(path, nodes)
        self._engagement_cache.put(key, tuple(engagements))
        return engagements

    def identify_path_patterns(self, path: ReaderPath, nodes: dict[str, NodeState]) -> list[ReadingPattern]:
        key = (path_key(path), registry_key(nodes))
        cached = self._pattern_cache.get(key)
        if cached is not None:
            return list(cached)
        patterns = analyze_path_patterns(path, nodes)
        self._pattern_cache.put(key, tuple(patterns))
        return patterns

    def calculate_theme_group_engagement(self, path: ReaderPath, nodes: dict[str, NodeState]) -> dict[str, float]:
        return calculate_theme_group_engagement(self.calculate_attractor_engagement(path, nodes))

    def _significant_attractors(self, path: ReaderPath, nodes: dict[str, NodeState]) -> set[str]:
        return {
            item.attractor
            for item in self.calculate_attractor_engagement(path, nodes)
            if item.engagement_score >= self.significant_engagement
        }

    def should_reveal_node(self, attractors: list[str], path: ReaderPath, nodes: dict[str, NodeState]) -> bool:
        if not attractors:
            return False
        significant = self._significant_attractors(path, nodes)
        return any(attractor in significant for attractor in attractors)

    def create_attractor_based_conditions(
        self,
        path: ReaderPath,
        nodes: dict[str, NodeState],
    ) -> list[TransformationCondition]:
        engagements = self.calculate_attractor_engagement(path, nodes)
        conditions = [
            TransformationCondition(strange_attractors_engaged=[item.attractor])
            for item in engagements
            if item.engagement_score >= self.significant_engagement
        ]
        for pattern in self.identify_path_patterns(path, nodes):
            if pattern.type == "thematic" and pattern.strength >= THEMATIC_CONDITION_STRENGTH and pattern.related_attractors:
                conditions.append(TransformationCondition(strange_attractors_engaged=list(pattern.related_attractors)))

        group_scores = calculate_theme_group_engagement(engagements)
        ranked = sorted(group_scores.items(), key=lambda item: item[1], reverse=True)
        dominant = next((theme for theme, score in ranked if score >= self.significant_engagement), None)
        if dominant is not None:
            conditions.append(
                TransformationCondition(
                    any_of=[
                        TransformationCondition(strange_attractors_engaged=[attractor])
                        for attractor in ATTRACTOR_THEME_GROUPS[dominant]
                    ]
                )
            )
        return conditions

    def generate_attractor_transformation_rules(
        self,
        path: ReaderPath,
        nodes: dict[str, NodeState],
    ) -> list[TransformationRule]:
        pattern_conditions = create_transformation_conditions(
            self.identify_path_patterns(path, nodes),
            self.calculate_attractor_engagement(path, nodes),
            min_engagement_score=self.significant_engagement,
        )
        return [
            TransformationRule(
                condition=item.condition,
                transformations=transformations_for_pattern_condition(item),
            )
            for item in pattern_conditions
        ]

    def evaluate_attractor_condition(
        self,
        condition: TransformationCondition,
        path: ReaderPath,
        node: NodeState,
        nodes: dict[str, NodeState],
    ) -> bool:
        required = condition.strange_attractors_engaged or []
        if required:
            significant = self._significant_attractors(path, nodes)
            if not any(attractor in significant for attractor in required):
                return False
        return self.evaluator.evaluate(condition, path, node)

    def invalidate(self) -> None:
        self._engagement_cache.clear()
        self._pattern_cache.clear()
        logger.debug("attractor caches cleared")

    def stats(self) -> dict:
        return {
            "engagements": self._engagement_cache.stats(),
            "patterns": self._pattern_cache.stats(),
        }
