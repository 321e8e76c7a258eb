from __future__ import annotations

import math

from narramorph.modules.analysis.engagement import calculate_attractor_engagement, engagement_by_attractor
from narramorph.modules.analysis.focus import calculate_character_focus_intensity
from narramorph.modules.analysis.models import ReadingPattern
from narramorph.modules.analysis.path_analyzer import analyze_path
from narramorph.modules.analysis.sequences import analyze_recursive_patterns
from narramorph.modules.analysis.temporal import analyze_temporal_jumping
from narramorph.modules.attractors.service import attractor_phrase
from narramorph.modules.reader.models import NodeState, NodeVisit, ReaderPath
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

MAX_JOURNEY_TRANSFORMATIONS = 8
STRONG_RECURSION = 0.6
FOCUSED_CHARACTER_INTENSITY = 0.4
CONTINUITY_WINDOW = 5
CONTINUITY_THRESHOLD = 0.6
RESONANCE_SCORE = 50.0
AMPLIFIED_SCORE = 75.0


def _pattern_intensity(pattern: ReadingPattern) -> int:
    return max(1, math.ceil(pattern.strength * 3))


def sequence_transformations(pattern: ReadingPattern, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
    strong = [item for item in analyze_recursive_patterns(path) if item.strength >= STRONG_RECURSION]
    if not strong:
        return []
    top = strong[0]
    transformations = [
        TextTransformation(
            type="metaComment",
            selector="pattern",
            replacement=f"recursive navigation detected: {'→'.join(top.sequence)} (×{top.occurrences})",
            comment_style="marginalia",
            intensity=_pattern_intensity(pattern),
            priority="high",
        )
    ]
    if pattern.strength > 0.8:
        transformations.append(
            TextTransformation(
                type="fragment",
                selector="recognition",
                fragment_pattern="...",
                fragment_style="progressive",
                intensity=2,
                priority="medium",
            )
        )
    if any(node.id in item.sequence for item in strong):
        transformations.append(
            TextTransformation(type="emphasize", selector="loop", emphasis="color", intensity=2, priority="medium")
        )
    return transformations


def character_transformations(pattern: ReadingPattern, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
    focused = [item for item in calculate_character_focus_intensity(path) if item.intensity >= FOCUSED_CHARACTER_INTENSITY]
    if not focused or not pattern.related_characters:
        return []
    dominant = focused[0]
    transformations: list[TextTransformation] = []
    if dominant.character != node.character:
        transformations.append(
            TextTransformation(
                type="metaComment",
                selector="perspective",
                replacement=(
                    f"{dominant.character} perspective bleeding through "
                    f"(focus: {round(dominant.intensity * 100)}%)"
                ),
                comment_style="interlinear",
                intensity=_pattern_intensity(pattern),
                priority="high",
            )
        )
        transformations.append(
            TextTransformation(type="emphasize", selector="I", emphasis="glitch", intensity=2, priority="medium")
        )
    if dominant.intensity > 0.7:
        transformations.append(
            TextTransformation(
                type="expand",
                selector="thought",
                replacement=f"[{dominant.character} cognitive patterns emerging]",
                expand_style="inline",
                priority="low",
            )
        )
    return transformations


def temporal_transformations(pattern: ReadingPattern, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
    jumping = analyze_temporal_jumping(path, {node.id: node})
    if jumping.volatility <= 0.5 and jumping.jump_frequency <= 0.3:
        return []
    transformations = [
        TextTransformation(
            type="metaComment",
            selector="time",
            replacement=(
                f"temporal displacement detected: {jumping.total_jumps} jumps, "
                f"{jumping.preferred_jump_direction} bias"
            ),
            comment_style="footnote",
            intensity=_pattern_intensity(pattern),
            priority="high",
        )
    ]
    if jumping.volatility > 0.7:
        transformations.append(
            TextTransformation(
                type="fragment",
                selector="moment",
                fragment_pattern="≈",
                fragment_style="character",
                intensity=3,
                priority="medium",
            )
        )
        transformations.append(
            TextTransformation(
                type="fragment",
                selector="now",
                fragment_pattern="≈",
                fragment_style="word",
                intensity=3,
                priority="medium",
            )
        )
    anchor = next((layer for layer, value in jumping.temporal_anchoring.items() if value > 0.6), None)
    if anchor is not None:
        transformations.append(
            TextTransformation(type="emphasize", selector=anchor, emphasis="highlight", intensity=2, priority="medium")
        )
    return transformations


def attractor_continuity(recent_visits: list[NodeVisit], node: NodeState) -> float:
    """Average tag overlap between ``node`` and recent visits that engaged any tag."""
    if len(recent_visits) < 2 or not node.strange_attractors:
        return 0.0
    current = node.strange_attractors
    score = 0.0
    compared = 0
    for visit in recent_visits:
        if not visit.engaged_attractors:
            continue
        shared = [tag for tag in current if tag in visit.engaged_attractors]
        score += len(shared) / max(len(current), len(visit.engaged_attractors))
        compared += 1
    return score / compared if compared else 0.0


def thematic_transformations(pattern: ReadingPattern, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
    if not pattern.related_attractors:
        return []
    engagements = engagement_by_attractor(calculate_attractor_engagement(path, {node.id: node}))
    transformations: list[TextTransformation] = []
    for attractor in pattern.related_attractors:
        engagement = engagements.get(attractor)
        if engagement is None or engagement.engagement_score < RESONANCE_SCORE:
            continue
        phrase = attractor_phrase(attractor)
        transformations.append(
            TextTransformation(
                type="metaComment",
                selector=phrase,
                replacement=(
                    f"strange attractor resonance: {round(engagement.engagement_score)}/100 ({engagement.trend})"
                ),
                comment_style="marginalia",
                intensity=_pattern_intensity(pattern),
                priority="high",
            )
        )
        if engagement.engagement_score > AMPLIFIED_SCORE:
            transformations.append(
                TextTransformation(type="emphasize", selector=phrase, emphasis="color", intensity=3, priority="medium")
            )
        if engagement.trend == "rising":
            transformations.append(
                TextTransformation(
                    type="expand",
                    selector=phrase,
                    replacement="[amplifying]",
                    expand_style="inline",
                    priority="low",
                )
            )

    if attractor_continuity(path.detailed_visits[-CONTINUITY_WINDOW:], node) > CONTINUITY_THRESHOLD:
        transformations.append(
            TextTransformation(
                type="replace",
                selector="connection",
                replacement="strange attractor web",
                preserve_formatting=True,
                priority="medium",
            )
        )
    return transformations


def rhythm_transformations(pattern: ReadingPattern, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
    fingerprint = analyze_path(path, {node.id: node}).fingerprint
    style = fingerprint.exploration_style
    transformations: list[TextTransformation] = []
    if style == "linear":
        transformations.append(
            TextTransformation(
                type="metaComment",
                selector="sequence",
                replacement="linear progression detected",
                comment_style="inline",
                intensity=1,
                priority="low",
            )
        )
    elif style == "recursive":
        transformations.append(
            TextTransformation(type="emphasize", selector="return", emphasis="spacing", intensity=2, priority="medium")
        )
    elif style == "wandering":
        transformations.append(
            TextTransformation(
                type="fragment",
                selector="direction",
                fragment_pattern="~",
                fragment_style="word",
                intensity=1,
                priority="low",
            )
        )
    elif style == "chaotic":
        transformations.append(
            TextTransformation(
                type="fragment",
                selector="order",
                fragment_pattern="!",
                fragment_style="progressive",
                intensity=3,
                priority="medium",
            )
        )
    if fingerprint.velocity_index > 0.7:
        transformations.append(
            TextTransformation(type="emphasize", selector="pace", emphasis="bold", intensity=2, priority="medium")
        )
    return transformations


_BUILDERS = {
    "sequence": sequence_transformations,
    "character": character_transformations,
    "temporal": temporal_transformations,
    "thematic": thematic_transformations,
    "rhythm": rhythm_transformations,
}


def build_journey_transformations(
    content: str,
    node: NodeState,
    path: ReaderPath,
    patterns: list[ReadingPattern],
) -> list[TextTransformation]:
    """Transformations that reflect how the reader has been moving through the story."""
    if not content or not patterns:
        return []
    transformations: list[TextTransformation] = []
    for pattern in patterns:
        builder = _BUILDERS.get(pattern.type)
        if builder is None:
            logger.warning("unknown pattern type=%s", pattern.type)
            continue
        transformations.extend(builder(pattern, node, path))
    return [item for item in transformations if item.selector][:MAX_JOURNEY_TRANSFORMATIONS]
