from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/v1/telemetry", tags=["telemetry"])


@router.get("/pipeline")
def pipeline_telemetry(request: Request) -> dict:
    return request.app.state.pipeline.telemetry.summary()


@router.post("/pipeline/reset")
def reset_pipeline_telemetry(request: Request) -> dict:
    request.app.state.pipeline.telemetry.reset()
    return {"status": "ok"}
