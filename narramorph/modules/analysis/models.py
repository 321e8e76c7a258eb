from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from narramorph.modules.conditions.schema import TransformationCondition

PatternType = Literal["sequence", "character", "temporal", "thematic", "rhythm"]
EngagementTrend = Literal["rising", "falling", "stable"]
JumpDirection = Literal["forward", "backward", "mixed"]
PatternConditionType = Literal[
    "visit_pattern",
    "character_focus",
    "temporal_focus",
    "reading_rhythm",
    "attractor_affinity",
    "attractor_engagement",
]


@dataclass(slots=True)
class ReadingPattern:
    type: PatternType
    strength: float
    description: str
    related_nodes: list[str] = field(default_factory=list)
    related_characters: list[str] = field(default_factory=list)
    related_temporal_layers: list[str] = field(default_factory=list)
    related_attractors: list[str] = field(default_factory=list)
    occurrences: int | None = None


@dataclass(slots=True)
class AttractorEngagement:
    attractor: str
    engagement_score: float
    total_engagements: int
    first_engagement: int | None
    last_engagement: int | None
    related_nodes: list[str]
    trend: EngagementTrend = "stable"


@dataclass(slots=True)
class RecursivePattern:
    sequence: list[str]
    length: int
    occurrences: int
    strength: float
    first_occurrence_index: int
    last_occurrence_index: int
    temporal_spread: float


@dataclass(slots=True)
class CharacterFocusIntensity:
    character: str
    intensity: float
    visit_ratio: float
    longest_streak: int
    temporal_layers: list[str]


@dataclass(slots=True)
class StrangeAttractorNode:
    node_id: str
    visit_count: int
    return_count: int
    average_return_gap: float
    magnetic_strength: float
    attractors: list[str]


@dataclass(slots=True)
class TemporalJumpingPattern:
    total_jumps: int
    forward_jumps: int
    backward_jumps: int
    preferred_jump_direction: JumpDirection
    average_jump_distance: float
    max_jump_distance: int
    jump_frequency: float
    temporal_anchoring: dict[str, float]
    volatility: float


@dataclass(slots=True)
class JourneyFingerprint:
    fingerprint_id: str
    exploration_style: str
    temporal_preference: str
    narrative_approach: str
    recursive_index: float
    focus_index: float
    velocity_index: float
    complexity_index: float
    total_visits: int
    unique_nodes: int


@dataclass(slots=True)
class PatternBasedCondition:
    type: PatternConditionType
    condition: TransformationCondition
    strength: float
    rhythm: Literal["fast", "deep"] | None = None


@dataclass(slots=True)
class PathAnalysis:
    patterns: list[ReadingPattern]
    significant_patterns: list[ReadingPattern]
    attractor_engagements: list[AttractorEngagement]
    recursive_patterns: list[RecursivePattern]
    character_intensities: list[CharacterFocusIntensity]
    attractor_nodes: list[StrangeAttractorNode]
    temporal_jumping: TemporalJumpingPattern
    fingerprint: JourneyFingerprint
