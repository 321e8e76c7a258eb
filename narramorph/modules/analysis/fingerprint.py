from __future__ import annotations

import hashlib
import json

from narramorph.modules.analysis.models import (
    CharacterFocusIntensity,
    JourneyFingerprint,
    ReadingPattern,
    RecursivePattern,
    StrangeAttractorNode,
    TemporalJumpingPattern,
)
from narramorph.modules.reader.models import ReaderPath

_PREFERENCE_BY_LAYER = {
    "past": "past-oriented",
    "present": "present-focused",
    "future": "future-seeking",
}


def _exploration_style(*, volatility: float, recursive: float, focus: float, complexity: float) -> str:
    if volatility > 0.7:
        return "chaotic"
    if recursive > 0.6:
        return "recursive"
    if focus > 0.7:
        return "focused"
    if complexity < 0.3:
        return "linear"
    return "wandering"


def _temporal_preference(anchoring: dict[str, float]) -> str:
    if not anchoring:
        return "time-fluid"
    layer, share = max(anchoring.items(), key=lambda item: item[1])
    if share >= 0.4:
        return _PREFERENCE_BY_LAYER.get(layer, "time-fluid")
    return "time-fluid"


def _narrative_approach(
    *,
    recursive: float,
    volatility: float,
    velocity: float,
    thematic_strength: float,
) -> str:
    if recursive >= 0.5 and volatility < 0.3:
        return "systematic"
    if thematic_strength >= 0.5:
        return "thematic"
    if volatility > 0.5 or velocity > 0.6:
        return "experimental"
    return "intuitive"


def fingerprint_id(sequence: list[str], indices: dict[str, float]) -> str:
    payload = {
        "sequence": list(sequence),
        "indices": {key: round(float(value), 6) for key, value in sorted(indices.items())},
    }
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True, ensure_ascii=True).encode("utf-8")).hexdigest()
    return f"journey-{digest[:12]}"


def generate_journey_fingerprint(
    path: ReaderPath,
    *,
    patterns: list[ReadingPattern],
    recursive_patterns: list[RecursivePattern],
    character_intensities: list[CharacterFocusIntensity],
    attractor_nodes: list[StrangeAttractorNode],
    temporal_jumping: TemporalJumpingPattern,
) -> JourneyFingerprint:
    """Collapse the individual analyses into one classification of the journey."""
    recursive_index = (
        sum(item.strength for item in recursive_patterns) / len(recursive_patterns) if recursive_patterns else 0.0
    )
    focus_index = character_intensities[0].intensity if character_intensities else 0.0
    velocity_index = min(1.0, temporal_jumping.average_jump_distance / 5)
    volatility = temporal_jumping.volatility
    complexity_index = (
        recursive_index * 0.3
        + focus_index * 0.3
        + volatility * 0.2
        + min(1.0, len(attractor_nodes) / 5) * 0.2
    )
    thematic_strength = max((item.strength for item in patterns if item.type == "thematic"), default=0.0)

    indices = {
        "recursive": recursive_index,
        "focus": focus_index,
        "velocity": velocity_index,
        "complexity": complexity_index,
    }
    return JourneyFingerprint(
        fingerprint_id=fingerprint_id(path.sequence, indices),
        exploration_style=_exploration_style(
            volatility=volatility,
            recursive=recursive_index,
            focus=focus_index,
            complexity=complexity_index,
        ),
        temporal_preference=_temporal_preference(temporal_jumping.temporal_anchoring),
        narrative_approach=_narrative_approach(
            recursive=recursive_index,
            volatility=volatility,
            velocity=velocity_index,
            thematic_strength=thematic_strength,
        ),
        recursive_index=round(recursive_index, 6),
        focus_index=round(focus_index, 6),
        velocity_index=round(velocity_index, 6),
        complexity_index=round(complexity_index, 6),
        total_visits=path.total_visits(),
        unique_nodes=len(set(path.sequence)),
    )
