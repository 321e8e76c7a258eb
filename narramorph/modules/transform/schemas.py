from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TRANSFORMATION_TYPES = ("replace", "fragment", "expand", "emphasize", "metaComment")
PRIORITY_HINT_VALUES = {"high": 3, "medium": 2, "low": 1}

FragmentStyle = Literal["character", "word", "progressive", "random"]
ExpandStyle = Literal["append", "inline", "paragraph", "reveal"]
EmphasisStyle = Literal["italic", "bold", "color", "spacing", "highlight", "glitch", "fade"]
CommentStyle = Literal["inline", "footnote", "marginalia", "interlinear"]
PriorityHint = Literal["high", "medium", "low"]
SourceType = Literal["pattern", "condition", "attractor", "temporal", "rhythm"]


class TextTransformation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Kept as a plain string so unknown types pass validation and apply as no-ops.
    type: str
    selector: str
    replacement: str | None = None
    fragment_pattern: str | None = None
    fragment_style: FragmentStyle | None = None
    emphasis: EmphasisStyle | None = None
    intensity: int | None = Field(default=None, ge=1, le=5)
    preserve_formatting: bool = False
    expand_style: ExpandStyle | None = None
    comment_style: CommentStyle | None = None
    priority: PriorityHint | None = None
    apply_immediately: bool = False

    @field_validator("intensity", mode="before")
    @classmethod
    def _clamp_intensity(cls, value):
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return max(1, min(5, int(value)))
        return value


def transformation_key(transformation: TextTransformation) -> tuple:
    return tuple(sorted(transformation.model_dump(exclude_defaults=True).items()))


def priority_hint_value(transformation: TextTransformation) -> int:
    return PRIORITY_HINT_VALUES.get(str(transformation.priority or ""), 0)


@dataclass(slots=True)
class PrioritizedTransformation:
    transformation: TextTransformation
    priority: int
    source_type: SourceType = "condition"
    conflict_group: str | None = None
