from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request

from narramorph.modules.content.schemas import EnhancedContent
from narramorph.modules.content.variants import parse_content_variants
from narramorph.modules.pipeline.errors import NodeNotFoundError
from narramorph.modules.pipeline.schemas import (
    AnalyzeRequest,
    ApplyRequest,
    ApplyResponse,
    BleedEffectOut,
    BleedRequest,
    BleedResponse,
    EvaluateRequest,
    EvaluateResponse,
    RenderRequest,
    RenderResponse,
    VariantsParseRequest,
    VariantsSelectRequest,
    VariantsSelectResponse,
)
from narramorph.modules.pipeline.service import NarrativePipeline

router = APIRouter(prefix="/api/v1/narrative", tags=["narrative"])


def get_pipeline(request: Request) -> NarrativePipeline:
    return request.app.state.pipeline


@router.post("/analyze")
def analyze(payload: AnalyzeRequest, pipeline: NarrativePipeline = Depends(get_pipeline)) -> dict:
    analysis = pipeline.analyze(payload.path, payload.nodes)
    return {
        **asdict(analysis),
        "theme_groups": pipeline.theme_groups(payload.path, payload.nodes),
        "attractor_rules": [
            rule.model_dump(by_alias=True, exclude_none=True)
            for rule in pipeline.attractor_rules(payload.path, payload.nodes)
        ],
    }


@router.post("/evaluate", response_model=EvaluateResponse)
def evaluate(payload: EvaluateRequest, pipeline: NarrativePipeline = Depends(get_pipeline)):
    result = pipeline.evaluate(payload.condition, payload.path, payload.node)
    _, trace = pipeline.evaluate_trace(payload.condition, payload.path, payload.node)
    return {"result": result, "trace": trace}


@router.post("/apply", response_model=ApplyResponse)
def apply(payload: ApplyRequest, pipeline: NarrativePipeline = Depends(get_pipeline)):
    return {"content": pipeline.apply_all(payload.content, payload.transformations)}


@router.post("/bleed", response_model=BleedResponse)
def bleed(payload: BleedRequest, pipeline: NarrativePipeline = Depends(get_pipeline)):
    transition = pipeline.bleed.detect_transition(payload.node, payload.path)
    effects = pipeline.calculate_bleed_effects(payload.node, payload.path)
    return BleedResponse(
        transition=list(transition) if transition else None,
        effects=[
            BleedEffectOut(
                transformation=effect.transformation,
                reason=effect.reason,
                source_character=effect.source_character,
                target_character=effect.target_character,
                intensity=effect.intensity,
            )
            for effect in effects
        ],
    )


@router.post("/variants/parse", response_model=EnhancedContent)
def parse_variants(payload: VariantsParseRequest):
    return parse_content_variants(payload.raw)


@router.post("/variants/select", response_model=VariantsSelectResponse)
def select_variant(payload: VariantsSelectRequest, pipeline: NarrativePipeline = Depends(get_pipeline)):
    enhanced = payload.content if payload.content is not None else parse_content_variants(payload.raw or "")
    return {"content": pipeline.select_variant(enhanced, payload.context)}


@router.post("/render", response_model=RenderResponse)
def render(payload: RenderRequest, pipeline: NarrativePipeline = Depends(get_pipeline)):
    try:
        result = pipeline.render(payload.node_id, payload.path, payload.nodes)
    except NodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": exc.code, "message": exc.message}) from exc
    return RenderResponse(
        node_id=result.node_id,
        variant=result.variant,
        content=result.content,
        transformations=result.transformations,
        clean_text=result.clean_text,
        transformation_ids=result.transformation_ids,
    )


@router.post("/cache/invalidate")
def invalidate_cache(pipeline: NarrativePipeline = Depends(get_pipeline)) -> dict:
    pipeline.invalidate_caches()
    return {"status": "ok", "rule_set_version": pipeline.evaluator.rule_set_version}


@router.get("/cache/stats")
def cache_stats(pipeline: NarrativePipeline = Depends(get_pipeline)) -> dict:
    return pipeline.cache_stats()
