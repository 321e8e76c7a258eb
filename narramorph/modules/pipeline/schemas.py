from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from narramorph.modules.conditions.schema import TransformationCondition
from narramorph.modules.content.schemas import ContentSelectionContext, EnhancedContent
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.schemas import TextTransformation


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AnalyzeRequest(_Request):
    path: ReaderPath
    nodes: dict[str, NodeState] = Field(default_factory=dict)


class EvaluateRequest(_Request):
    condition: TransformationCondition = Field(default_factory=TransformationCondition)
    path: ReaderPath
    node: NodeState


class EvaluateResponse(BaseModel):
    result: bool
    trace: dict


class ApplyRequest(_Request):
    content: str
    transformations: list[TextTransformation] = Field(default_factory=list)


class ApplyResponse(BaseModel):
    content: str


class BleedRequest(_Request):
    node: NodeState
    path: ReaderPath


class BleedEffectOut(BaseModel):
    transformation: TextTransformation
    reason: str
    source_character: str
    target_character: str
    intensity: int


class BleedResponse(BaseModel):
    transition: list[str] | None = None
    effects: list[BleedEffectOut] = Field(default_factory=list)


class VariantsParseRequest(_Request):
    raw: str


class VariantsSelectRequest(_Request):
    content: EnhancedContent | None = None
    raw: str | None = None
    context: ContentSelectionContext = Field(default_factory=ContentSelectionContext)

    @model_validator(mode="after")
    def _require_source(self) -> "VariantsSelectRequest":
        if self.content is None and self.raw is None:
            raise ValueError("either content or raw is required")
        return self


class VariantsSelectResponse(BaseModel):
    content: str


class RenderRequest(_Request):
    node_id: str
    path: ReaderPath
    nodes: dict[str, NodeState] = Field(default_factory=dict)


class RenderResponse(BaseModel):
    node_id: str
    variant: str
    content: str
    transformations: list[TextTransformation] = Field(default_factory=list)
    clean_text: str = ""
    transformation_ids: list[str] = Field(default_factory=list)
