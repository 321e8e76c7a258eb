from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from narramorph.modules.conditions.schema import TransformationRule
from narramorph.modules.content.schemas import EnhancedContent

Character = Literal["Archaeologist", "Algorithm", "LastHuman"]
TemporalLabel = Literal["past", "present", "future"]
LifecycleState = Literal["unvisited", "visited", "revisited", "complex", "fragmented"]

CHARACTERS: tuple[str, ...] = ("Archaeologist", "Algorithm", "LastHuman")
TEMPORAL_LABELS: tuple[str, ...] = ("past", "present", "future")
ENDPOINT_ORIENTATIONS: tuple[str, ...] = ("past", "present", "future")

# Stand-in temporal value per bucket when a visit carries only its label.
TEMPORAL_BUCKET_MIDPOINTS = {"past": 2, "present": 5, "future": 8}


def temporal_label(temporal_value: int) -> str:
    if temporal_value <= 3:
        return "past"
    if temporal_value <= 6:
        return "present"
    return "future"


class LifecycleThresholds(BaseModel):
    model_config = ConfigDict(extra="forbid")

    revisit: int = 2
    complex: int = 4
    fragmented: int = 7


class NodeState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    character: Character
    temporal_value: int = Field(ge=1, le=10)
    strange_attractors: list[str] = Field(default_factory=list)
    current_state: LifecycleState = "unvisited"
    visit_count: int = Field(default=0, ge=0)
    current_content: str | None = None
    enhanced_content: EnhancedContent | None = None
    transformation_thresholds: LifecycleThresholds = Field(default_factory=LifecycleThresholds)
    transformations: list[TransformationRule] = Field(default_factory=list)

    @property
    def temporal_layer(self) -> str:
        return temporal_label(self.temporal_value)


class NodeVisit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    node_id: str
    character: Character
    temporal_layer: TemporalLabel
    engaged_attractors: list[str] = Field(default_factory=list)
    index: int = Field(default=0, ge=0)
    revisit_count: int = Field(default=1, ge=1)
    temporal_value: int | None = Field(default=None, ge=1, le=10)
    duration_ms: float | None = Field(default=None, ge=0)


class NodeTransition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    from_node_id: str
    to_node_id: str
    attractors_engaged: list[str] = Field(default_factory=list)
    duration_ms: float | None = Field(default=None, ge=0)


class ReadingRhythm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fast_transitions: int = Field(default=0, ge=0)
    deep_engagements: int = Field(default=0, ge=0)


def _default_endpoint_progress() -> dict[str, float]:
    return {orientation: 0.0 for orientation in ENDPOINT_ORIENTATIONS}


class ReaderPath(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sequence: list[str] = Field(default_factory=list)
    revisit_patterns: dict[str, int] = Field(default_factory=dict)
    detailed_visits: list[NodeVisit] = Field(default_factory=list)
    transitions: list[NodeTransition] = Field(default_factory=list)
    character_focus: dict[str, int] = Field(default_factory=dict)
    temporal_layer_focus: dict[str, int] = Field(default_factory=dict)
    attractors_engaged: dict[str, int] = Field(default_factory=dict)
    endpoint_progress: dict[str, float] = Field(default_factory=_default_endpoint_progress)
    reading_rhythm: ReadingRhythm | None = None

    @field_validator("endpoint_progress")
    @classmethod
    def _clamp_progress(cls, value: dict[str, float]) -> dict[str, float]:
        return {str(key): max(0.0, min(100.0, float(raw))) for key, raw in value.items()}

    def total_visits(self) -> int:
        if self.detailed_visits:
            return len(self.detailed_visits)
        return len(self.sequence)

    def character_sequence(self) -> list[str]:
        return [visit.character for visit in self.detailed_visits]

    def temporal_sequence(self) -> list[str]:
        return [visit.temporal_layer for visit in self.detailed_visits]

    def previous_visit(self) -> NodeVisit | None:
        if len(self.detailed_visits) < 2:
            return None
        return self.detailed_visits[-2]


NodeRegistry = dict[str, NodeState]
