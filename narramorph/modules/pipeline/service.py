from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field

from narramorph.config import Settings
from narramorph.modules.analysis.models import PathAnalysis
from narramorph.modules.analysis.path_analyzer import analyze_path
from narramorph.modules.attractors.service import AttractorEngagementSystem
from narramorph.modules.bleed.service import CharacterBleedCalculator, CharacterBleedEffect
from narramorph.modules.conditions.evaluator import ConditionEvaluator
from narramorph.modules.conditions.schema import TransformationCondition, TransformationRule
from narramorph.modules.content.schemas import ContentSelectionContext, EnhancedContent
from narramorph.modules.content.variants import create_selection_context, select_content_variant
from narramorph.modules.pipeline.errors import NodeNotFoundError
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.telemetry.service import PipelineTelemetry
from narramorph.modules.transform.applier import TransformationApplier
from narramorph.modules.transform.priority import PriorityResolver
from narramorph.modules.transform.sanitizer import (
    final_text_cleanup,
    generate_transformation_id,
    is_content_corrupted,
    strip_transformation_markup,
)
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.modules.transform.service import TransformationService
from narramorph.utils.logging import get_logger
from narramorph.utils.time import elapsed_ms, monotonic_s

logger = get_logger(__name__)


@dataclass(slots=True)
class RenderResult:
    node_id: str
    variant: str
    content: str
    transformations: list[TextTransformation] = field(default_factory=list)
    clean_text: str = ""
    transformation_ids: list[str] = field(default_factory=list)


class NarrativePipeline:
    """Owns one instance of every pipeline service and the caches inside them.

    The host builds a single pipeline and shares it; each service keeps its own
    lock-guarded caches, cleared together by ``invalidate_caches``.
    """

    def __init__(
        self,
        *,
        evaluator: ConditionEvaluator,
        applier: TransformationApplier,
        resolver: PriorityResolver,
        bleed: CharacterBleedCalculator,
        attractors: AttractorEngagementSystem,
        transformations: TransformationService,
        telemetry: PipelineTelemetry,
        min_pattern_strength: float = 0.6,
        pattern_limit: int = 5,
    ) -> None:
        self.evaluator = evaluator
        self.applier = applier
        self.resolver = resolver
        self.bleed = bleed
        self.attractors = attractors
        self.transformations = transformations
        self.telemetry = telemetry
        self.min_pattern_strength = float(min_pattern_strength)
        self.pattern_limit = int(pattern_limit)

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = monotonic_s,
    ) -> "NarrativePipeline":
        telemetry = PipelineTelemetry()
        evaluator = ConditionEvaluator(cache_capacity=config.condition_cache_capacity)
        applier = TransformationApplier(
            cache_capacity=config.transformation_cache_capacity,
            batch_cache_capacity=config.batch_cache_capacity,
            guard_max_chars=config.transform_guard_max_chars,
            batch_guard_max_chars=config.batch_guard_max_chars,
            batch_guard_max_transformations=config.batch_guard_max_transformations,
            rng=rng,
            on_guard_trip=telemetry.record_guard_trip,
            on_failure=telemetry.record_application_failure,
        )
        resolver = PriorityResolver()
        bleed = CharacterBleedCalculator(rng=rng)
        return cls(
            evaluator=evaluator,
            applier=applier,
            resolver=resolver,
            bleed=bleed,
            attractors=AttractorEngagementSystem(
                evaluator,
                cache_capacity=config.attractor_cache_capacity,
                cache_ttl_s=config.attractor_cache_ttl_s,
                significant_engagement=config.significant_engagement_threshold,
                clock=clock,
            ),
            transformations=TransformationService(
                evaluator=evaluator,
                applier=applier,
                resolver=resolver,
                bleed=bleed,
                master_cache_capacity=config.master_cache_capacity,
                content_cache_capacity=config.content_cache_capacity,
                content_cache_ttl_s=config.content_cache_ttl_s,
                min_pattern_strength=config.significant_pattern_strength,
                pattern_limit=config.significant_pattern_limit,
                significant_engagement=config.significant_engagement_threshold,
                clock=clock,
            ),
            telemetry=telemetry,
            min_pattern_strength=config.significant_pattern_strength,
            pattern_limit=config.significant_pattern_limit,
        )

    def analyze(self, path: ReaderPath, nodes: dict[str, NodeState]) -> PathAnalysis:
        return analyze_path(
            path,
            nodes,
            min_pattern_strength=self.min_pattern_strength,
            pattern_limit=self.pattern_limit,
        )

    def theme_groups(self, path: ReaderPath, nodes: dict[str, NodeState]) -> dict[str, float]:
        return self.attractors.calculate_theme_group_engagement(path, nodes)

    def attractor_rules(self, path: ReaderPath, nodes: dict[str, NodeState]) -> list[TransformationRule]:
        return self.attractors.generate_attractor_transformation_rules(path, nodes)

    def evaluate(
        self,
        condition: TransformationCondition | dict | None,
        path: ReaderPath,
        node: NodeState,
    ) -> bool:
        return self.evaluator.evaluate(condition, path, node)

    def evaluate_trace(
        self,
        condition: TransformationCondition | dict | None,
        path: ReaderPath,
        node: NodeState,
    ) -> tuple[bool, dict]:
        return self.evaluator.evaluate_trace(condition, path, node)

    def apply_all(self, content: str, transformations: list[TextTransformation]) -> str:
        """Settle selector conflicts by base priority, then apply the survivors highest first."""
        return self.applier.apply_all(content, self.resolver.resolve(list(transformations)), presorted=True)

    def calculate_bleed(self, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
        return self.bleed.calculate_bleed_transformations(node, path)

    def calculate_bleed_effects(self, node: NodeState, path: ReaderPath) -> list[CharacterBleedEffect]:
        return self.bleed.calculate_bleed_effects(node, path)

    def select_variant(self, enhanced: EnhancedContent, context: ContentSelectionContext) -> str:
        return select_content_variant(enhanced, context)

    def render(self, node_id: str, path: ReaderPath, nodes: dict[str, NodeState]) -> RenderResult:
        node = nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)

        started_at = monotonic_s()
        try:
            if node.enhanced_content is not None:
                variant = self.select_variant(node.enhanced_content, create_selection_context(node, path, nodes))
            else:
                variant = node.current_content or ""
            if not variant:
                logger.warning("render with empty content node=%s", node_id)
                return RenderResult(node_id=node_id, variant="", content="")

            staged = node.model_copy(update={"current_content": variant})
            transformations = self.transformations.calculate_all_transformations(variant, staged, path, nodes)
            content = self.transformations.get_cached_transformed_content(node_id, variant, transformations, path, staged)
            if is_content_corrupted(content) and not is_content_corrupted(variant):
                self.telemetry.record_guard_trip("render")
                stripped = strip_transformation_markup(content)
                content = variant if is_content_corrupted(stripped) else stripped
                logger.warning("corrupted render output node=%s recovered_from_markup=%s", node_id, content == stripped)
        except Exception:
            self.telemetry.record_render_failure()
            raise
        self.telemetry.record_render(latency_ms=elapsed_ms(started_at))
        logger.debug("rendered node=%s transformations=%s", node_id, len(transformations))
        return RenderResult(
            node_id=node_id,
            variant=variant,
            content=content,
            transformations=transformations,
            clean_text=final_text_cleanup(content),
            transformation_ids=[generate_transformation_id(item) for item in transformations],
        )

    def invalidate_caches(self) -> None:
        self.evaluator.invalidate()
        self.applier.clear()
        self.attractors.invalidate()
        self.transformations.clear()
        logger.info("pipeline caches invalidated")

    def cache_stats(self) -> dict:
        return {
            "conditions": self.evaluator.stats(),
            "applier": self.applier.stats(),
            "attractors": self.attractors.stats(),
            "transformations": self.transformations.stats(),
        }
