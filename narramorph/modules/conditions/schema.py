from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from narramorph.modules.transform.schemas import TextTransformation

TemporalPosition = Literal["past", "present", "future"]


class _ConditionPart(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EndpointProgressRequirement(_ConditionPart):
    orientation: TemporalPosition
    min_value: float = 0.0


class RevisitRequirement(_ConditionPart):
    node_id: str
    min_visits: int = 1


class CharacterFocusCondition(_ConditionPart):
    characters: list[str] = Field(default_factory=list)
    min_focus_ratio: float = 0.4
    include_intensity: bool = False


class TemporalFocusCondition(_ConditionPart):
    temporal_layers: list[TemporalPosition] = Field(default_factory=list)
    min_focus_ratio: float = 0.4
    include_progression: bool = False


class AttractorAffinityCondition(_ConditionPart):
    attractors: list[str] = Field(default_factory=list)
    min_affinity_ratio: float = 0.25
    include_thematic_continuity: bool = False


class AttractorEngagementCondition(_ConditionPart):
    attractor: str
    min_engagement_score: float = 50.0
    trend_required: Literal["any", "rising", "falling", "stable"] = "any"


class RecursivePatternCondition(_ConditionPart):
    min_pattern_strength: float = 0.6
    max_pattern_length: int = 4
    require_recency: bool = False


class JourneyFingerprintCondition(_ConditionPart):
    exploration_style: Literal["linear", "recursive", "wandering", "focused", "chaotic"] | None = None
    temporal_preference: Literal["past-oriented", "present-focused", "future-seeking", "time-fluid"] | None = None
    narrative_approach: Literal["systematic", "intuitive", "thematic", "experimental"] | None = None
    min_complexity_index: float | None = None
    min_focus_index: float | None = None


class TransformationCondition(_ConditionPart):
    """Boolean condition tree.

    Every field is optional; a field left unset does not constrain anything,
    so ``TransformationCondition()`` is always true. ``all_of``/``any_of``/
    ``not_`` are the combinators and also accept ``allOf``/``anyOf``/``not``.
    """

    visit_count: int | None = None
    previously_visited_nodes: list[str] | None = None
    visit_pattern: list[str] | None = None
    journey_pattern: list[str] | None = None
    strange_attractors_engaged: list[str] | None = None
    temporal_position: TemporalPosition | None = None
    endpoint_progress: EndpointProgressRequirement | None = None
    revisit_pattern: list[RevisitRequirement] | None = None
    character_bleed: bool | None = None

    character_focus: CharacterFocusCondition | None = None
    temporal_focus: TemporalFocusCondition | None = None
    attractor_affinity: AttractorAffinityCondition | None = None
    attractor_engagement: AttractorEngagementCondition | None = None
    recursive_pattern: RecursivePatternCondition | None = None
    journey_fingerprint: JourneyFingerprintCondition | None = None

    all_of: list[TransformationCondition] | None = Field(default=None, alias="allOf")
    any_of: list[TransformationCondition] | None = Field(default=None, alias="anyOf")
    not_: TransformationCondition | None = Field(default=None, alias="not")

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


TransformationCondition.model_rebuild()


class TransformationRule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    condition: TransformationCondition = Field(default_factory=TransformationCondition)
    transformations: list[TextTransformation] = Field(default_factory=list)


def coerce_condition(condition: TransformationCondition | dict | None) -> TransformationCondition:
    if isinstance(condition, TransformationCondition):
        return condition
    if not isinstance(condition, dict):
        return TransformationCondition()
    return TransformationCondition.model_validate(condition)


def freeze_structure(value):
    if isinstance(value, dict):
        return tuple(sorted((str(key), freeze_structure(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(freeze_structure(item) for item in value)
    if isinstance(value, set):
        return tuple(sorted(freeze_structure(item) for item in value))
    return value


def condition_structure_key(condition: TransformationCondition) -> tuple:
    return freeze_structure(condition.model_dump(by_alias=True, exclude_none=True))
