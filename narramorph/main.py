from contextlib import asynccontextmanager

from fastapi import FastAPI

from narramorph.config import settings
from narramorph.modules.pipeline.router import router as narrative_router
from narramorph.modules.pipeline.service import NarrativePipeline
from narramorph.modules.telemetry.router import router as telemetry_router
from narramorph.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    configure_logging(settings.log_level, settings.log_format)
    logger.info("pipeline ready env=%s", settings.env)
    yield


app = FastAPI(title=settings.app_name, lifespan=_lifespan)
app.state.pipeline = NarrativePipeline.from_settings(settings)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(narrative_router)
app.include_router(telemetry_router)
