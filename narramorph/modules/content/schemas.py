from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EnhancedContent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base: str = ""
    visit_count_variants: dict[int, str] = Field(default_factory=dict)
    section_variants: dict[str, str] = Field(default_factory=dict)


class ContentSelectionContext(BaseModel):
    model_config = ConfigDict(extra="forbid")

    visit_count: int | None = 0
    last_visited_character: str | None = None
    current_character: str | None = None
    journey_pattern: list[str] = Field(default_factory=list)
    character_sequence: list[str] = Field(default_factory=list)
    attractors_engaged: dict[str, int] = Field(default_factory=dict)
    recursive_awareness: float = 0.0
