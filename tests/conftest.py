from __future__ import annotations

import random

import pytest

from narramorph.config import Settings
from narramorph.main import app
from narramorph.modules.pipeline.service import NarrativePipeline


@pytest.fixture(autouse=True)
def _reset_app_pipeline() -> None:
    app.state.pipeline.invalidate_caches()
    app.state.pipeline.telemetry.reset()
    yield
    app.state.pipeline.invalidate_caches()
    app.state.pipeline.telemetry.reset()


@pytest.fixture
def pipeline() -> NarrativePipeline:
    return NarrativePipeline.from_settings(Settings(), rng=random.Random(7))
