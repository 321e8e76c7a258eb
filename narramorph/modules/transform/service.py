from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from narramorph.modules.analysis.engagement import calculate_attractor_engagement
from narramorph.modules.analysis.path_analyzer import (
    SIGNIFICANT_PATTERN_LIMIT,
    SIGNIFICANT_PATTERN_STRENGTH,
    analyze_path_patterns,
    create_transformation_conditions,
    identify_significant_patterns,
)
from narramorph.modules.attractors.service import attractor_phrase, registry_key
from narramorph.modules.bleed.service import CharacterBleedCalculator
from narramorph.modules.conditions.evaluator import ConditionEvaluator, node_key, path_key
from narramorph.modules.conditions.schema import freeze_structure
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.applier import TransformationApplier, carries_transform_markers
from narramorph.modules.transform.journey import build_journey_transformations
from narramorph.modules.transform.priority import PriorityResolver
from narramorph.modules.transform.schemas import TextTransformation, priority_hint_value, transformation_key
from narramorph.utils.cache import LRUCache, TTLCache
from narramorph.utils.logging import get_logger
from narramorph.utils.time import monotonic_s

logger = get_logger(__name__)

MAX_BLEED_TRANSFORMATIONS = 3
MAX_JOURNEY_TRANSFORMATIONS = 4
MAX_NODE_RULE_TRANSFORMATIONS = 3
MASTER_GUARD_MAX_CHARS = 15000

TYPE_ORDER = {"replace": 0, "fragment": 1, "emphasize": 2, "expand": 3, "metaComment": 4}

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def sort_for_application(transformations: list[TextTransformation]) -> list[TextTransformation]:
    """Hint first, then transformations flagged to apply immediately, then type order."""
    return sorted(
        transformations,
        key=lambda item: (-priority_hint_value(item), not item.apply_immediately, TYPE_ORDER.get(item.type, 5)),
    )


def deduplicate_transformations(transformations: list[TextTransformation]) -> list[TextTransformation]:
    seen: set[tuple[str, str, str]] = set()
    unique: list[TextTransformation] = []
    for transformation in transformations:
        key = (transformation.type, transformation.selector, transformation.replacement or "")
        if key in seen:
            continue
        seen.add(key)
        unique.append(transformation)
    if len(unique) < len(transformations):
        logger.debug("deduplicated transformations %s -> %s", len(transformations), len(unique))
    return unique


def calculate_pattern_hash(path: ReaderPath) -> str:
    recent = "-".join(path.sequence[-5:])
    ranked = sorted(path.attractors_engaged.items(), key=lambda item: item[1], reverse=True)
    attractors = "-".join(attractor for attractor, _ in ranked[:3])
    progress = "-".join(f"{value:g}" for value in path.endpoint_progress.values())
    return f"{recent}|{attractors}|{progress}"


def get_transformation_hash(transformations: list[TextTransformation]) -> str:
    return "|".join(f"{item.type}-{item.selector[:10]}" for item in transformations)


def transition_class(transformation: TextTransformation) -> str:
    kind = transformation.type
    classes = f"narramorph-transform-{kind}"
    if kind == "replace":
        classes += " narramorph-replaced"
        if transformation.preserve_formatting:
            classes += " preserve-formatting"
    elif kind == "fragment":
        classes += " narramorph-fragmented"
        if transformation.fragment_style:
            classes += f" narramorph-fragment-{transformation.fragment_style}"
    elif kind == "expand":
        classes += " narramorph-expanded"
    elif kind == "emphasize":
        classes += " narramorph-emphasized"
        if transformation.emphasis:
            classes += f" narramorph-emphasis-{transformation.emphasis}"
        classes += f" intensity-{transformation.intensity or 1}"
    elif kind == "metaComment":
        classes += " narramorph-commented"
    sanitized = _NON_ALNUM.sub("_", transformation.selector)
    return f"{classes} narramorph-element-{sanitized[:20]}"


def generate_transition_classes(transformations: list[TextTransformation]) -> dict[str, str]:
    return {item.selector: transition_class(item) for item in transformations if item.selector}


def _wrap_target(transformation: TextTransformation, css_class: str) -> tuple[str, str] | None:
    kind = transformation.type
    selector = transformation.selector
    opening = f'<span class="{css_class}" data-transform-type="{kind}">'
    if kind in {"replace", "fragment", "emphasize"}:
        target = (transformation.replacement or "") if kind == "replace" else selector
        if not target:
            return None
        return target, f"{opening}{target}</span>"
    if kind == "expand" and transformation.replacement:
        return (
            f"{selector} {transformation.replacement}",
            f'{opening}{selector}<span class="narramorph-expansion">{transformation.replacement}</span></span>',
        )
    if kind == "metaComment" and transformation.replacement:
        return (
            f"{selector} [{transformation.replacement}]",
            f'{opening}{selector}<span class="narramorph-comment">[{transformation.replacement}]</span></span>',
        )
    return None


def wrap_transformed_content(content: str, transformations: list[TextTransformation]) -> str:
    """Mark already-transformed text with classes a renderer can animate."""
    if not transformations:
        return content
    wrapped = content
    for selector, css_class in generate_transition_classes(transformations).items():
        transformation = next(item for item in transformations if item.selector == selector)
        target = _wrap_target(transformation, css_class)
        if target is None:
            continue
        text, markup = target
        index = wrapped.find(text)
        if index == -1:
            continue
        wrapped = f"{wrapped[:index]}{markup}{wrapped[index + len(text):]}"
    return wrapped


class TransformationService:
    """Runs the full transformation pipeline for a node and caches the results."""

    def __init__(
        self,
        *,
        evaluator: ConditionEvaluator,
        applier: TransformationApplier,
        resolver: PriorityResolver,
        bleed: CharacterBleedCalculator,
        master_cache_capacity: int = 100,
        content_cache_capacity: int = 200,
        content_cache_ttl_s: float = 300.0,
        min_pattern_strength: float = SIGNIFICANT_PATTERN_STRENGTH,
        pattern_limit: int = SIGNIFICANT_PATTERN_LIMIT,
        significant_engagement: float = 50.0,
        clock: Callable[[], float] = monotonic_s,
    ) -> None:
        self.evaluator = evaluator
        self.applier = applier
        self.resolver = resolver
        self.bleed = bleed
        self.min_pattern_strength = float(min_pattern_strength)
        self.pattern_limit = int(pattern_limit)
        self.significant_engagement = float(significant_engagement)
        self._visible_nodes: frozenset[str] = frozenset()
        self._master_cache = LRUCache(master_cache_capacity)
        self._content_cache = TTLCache(
            content_cache_capacity,
            content_cache_ttl_s,
            clock=clock,
            keep=self._is_visible_key,
        )

    def _is_visible_key(self, key) -> bool:
        return bool(key) and key[0] in self._visible_nodes

    def set_visible_nodes(self, node_ids: Iterable[str]) -> None:
        self._visible_nodes = frozenset(node_ids)

    def calculate_all_transformations(
        self,
        content: str,
        node: NodeState,
        path: ReaderPath,
        nodes: dict[str, NodeState],
    ) -> list[TextTransformation]:
        if carries_transform_markers(content) and len(content) > MASTER_GUARD_MAX_CHARS:
            logger.warning("content already heavily transformed node=%s length=%s", node.id, len(content))
            return []

        cache_key = (
            content,
            node_key(node),
            path_key(path),
            registry_key(nodes),
            freeze_structure([rule.model_dump(by_alias=True, exclude_none=True) for rule in node.transformations]),
            self.evaluator.rule_set_version,
        )
        cached = self._master_cache.get(cache_key)
        if cached is not None:
            logger.debug("master transformation cache hit node=%s", node.id)
            return list(cached)

        collected: list[TextTransformation] = []

        bleed = self.bleed.calculate_bleed_transformations(node, path)
        collected.extend(
            item.model_copy(update={"priority": "high", "apply_immediately": True})
            for item in bleed[:MAX_BLEED_TRANSFORMATIONS]
        )

        patterns = analyze_path_patterns(path, nodes)
        journey = build_journey_transformations(content, node, path, patterns) if patterns else []
        collected.extend(
            item.model_copy(update={"priority": "high"}) for item in journey[:MAX_JOURNEY_TRANSFORMATIONS]
        )

        rules = self.evaluator.evaluate_all_transformations(node.transformations, path, node)
        collected.extend(
            item if item.priority else item.model_copy(update={"priority": "medium"})
            for item in rules[:MAX_NODE_RULE_TRANSFORMATIONS]
        )

        result = deduplicate_transformations(sort_for_application(collected))
        self._master_cache.put(cache_key, tuple(result))
        logger.debug(
            "transformations node=%s bleed=%s patterns=%s rules=%s total=%s",
            node.id,
            len(bleed),
            len(patterns),
            len(node.transformations),
            len(result),
        )
        return result

    def get_transformed_content(self, node: NodeState, path: ReaderPath, nodes: dict[str, NodeState]) -> str:
        content = node.current_content or (node.enhanced_content.base if node.enhanced_content else "")
        if not content:
            logger.warning("no content available node=%s", node.id)
            return ""
        transformations = self.calculate_all_transformations(content, node, path, nodes)
        return self.applier.apply_all(content, transformations)

    def apply_transformations_with_priority(
        self,
        content: str,
        transformations: list[TextTransformation],
        path: ReaderPath,
        node: NodeState,
    ) -> str:
        if not content or not transformations:
            return content
        return self.applier.apply_all(content, self.resolver.resolve(transformations, path, node), presorted=True)

    def get_cached_transformed_content(
        self,
        node_id: str,
        content: str,
        transformations: list[TextTransformation],
        path: ReaderPath,
        node: NodeState,
    ) -> str:
        cache_key = (
            node_id,
            node.visit_count,
            calculate_pattern_hash(path),
            path_key(path),
            content,
            tuple(transformation_key(item) for item in transformations),
        )
        cached = self._content_cache.get(cache_key)
        if cached is not None:
            logger.debug("transformed content cache hit node=%s", node_id)
            return cached
        result = self.apply_transformations_with_priority(content, transformations, path, node)
        self._content_cache.put(cache_key, result)
        return result

    def create_transformations_from_patterns(self, path: ReaderPath, node: NodeState) -> list[TextTransformation]:
        registry = {node.id: node}
        conditions = create_transformation_conditions(
            identify_significant_patterns(
                path, registry, min_strength=self.min_pattern_strength, limit=self.pattern_limit
            ),
            calculate_attractor_engagement(path, registry),
            min_engagement_score=self.significant_engagement,
        )
        content = node.current_content
        if not content:
            return []
        paragraphs = content.split("\n\n")

        transformations: list[TextTransformation] = []
        for item in conditions:
            condition = item.condition
            if item.type == "visit_pattern":
                if item.strength > 0.8 and len(paragraphs) > 1:
                    transformations.append(
                        TextTransformation(
                            type="replace",
                            selector=paragraphs[1],
                            replacement=f"{paragraphs[1]} [A recurring pattern emerges in your exploration]",
                        )
                    )
            elif item.type == "character_focus":
                characters = condition.character_focus.characters if condition.character_focus else []
                if item.strength > 0.7 and characters and characters[0] == node.character:
                    transformations.append(TextTransformation(type="emphasize", selector=paragraphs[0], emphasis="color"))
            elif item.type == "temporal_focus":
                layer = condition.temporal_position
                if item.strength > 0.7 and layer == node.temporal_layer and len(paragraphs) > 2:
                    transformations.append(
                        TextTransformation(
                            type="metaComment",
                            selector=paragraphs[2],
                            replacement=f"You seem drawn to {layer} narratives",
                        )
                    )
            elif item.type == "reading_rhythm":
                if item.strength <= 0.6:
                    continue
                if item.rhythm == "fast" and len(paragraphs) > 1:
                    transformations.append(
                        TextTransformation(type="fragment", selector=paragraphs[1], fragment_pattern="...")
                    )
                elif item.rhythm == "deep":
                    transformations.append(
                        TextTransformation(
                            type="expand",
                            selector=paragraphs[0],
                            replacement="Your careful reading reveals deeper layers of meaning.",
                        )
                    )
            elif item.type in {"attractor_affinity", "attractor_engagement"}:
                attractors = condition.strange_attractors_engaged or []
                if item.strength > 0.7 and attractors and attractors[0] in node.strange_attractors:
                    transformations.append(
                        TextTransformation(
                            type="expand",
                            selector=paragraphs[0],
                            replacement=f"The concept of {attractor_phrase(attractors[0])} resonates with you.",
                        )
                    )
        return [item for item in transformations if item.selector]

    def clear(self) -> None:
        self._master_cache.clear()
        self._content_cache.clear()

    def stats(self) -> dict:
        return {
            "master": self._master_cache.stats(),
            "content": self._content_cache.stats(),
            "visible_nodes": len(self._visible_nodes),
        }
