from __future__ import annotations

from narramorph.modules.analysis.engagement import calculate_attractor_engagement
from narramorph.modules.analysis.fingerprint import generate_journey_fingerprint
from narramorph.modules.analysis.focus import (
    calculate_character_focus_intensity,
    identify_attractor_affinity_patterns,
    identify_character_focus_patterns,
    identify_reading_rhythm_patterns,
    identify_strange_attractor_nodes,
    identify_temporal_layer_patterns,
)
from narramorph.modules.analysis.models import (
    AttractorEngagement,
    PathAnalysis,
    PatternBasedCondition,
    ReadingPattern,
)
from narramorph.modules.analysis.sequences import (
    MIN_SEQUENCE_LENGTH,
    analyze_recursive_patterns,
    identify_repeated_sequences,
)
from narramorph.modules.analysis.temporal import analyze_temporal_jumping
from narramorph.modules.conditions.schema import CharacterFocusCondition, TransformationCondition
from narramorph.modules.reader.models import NodeState, ReaderPath

SIGNIFICANT_PATTERN_STRENGTH = 0.6
SIGNIFICANT_PATTERN_LIMIT = 5
SIGNIFICANT_ENGAGEMENT_SCORE = 50.0


def analyze_path_patterns(path: ReaderPath, nodes: dict[str, NodeState]) -> list[ReadingPattern]:
    if len(path.sequence) < MIN_SEQUENCE_LENGTH:
        return []
    patterns: list[ReadingPattern] = []
    patterns.extend(identify_repeated_sequences(path))
    patterns.extend(identify_character_focus_patterns(path))
    patterns.extend(identify_temporal_layer_patterns(path))
    patterns.extend(identify_reading_rhythm_patterns(path))
    patterns.extend(identify_attractor_affinity_patterns(path, nodes))
    return patterns


def select_significant_patterns(
    patterns: list[ReadingPattern],
    *,
    min_strength: float = SIGNIFICANT_PATTERN_STRENGTH,
    limit: int = SIGNIFICANT_PATTERN_LIMIT,
) -> list[ReadingPattern]:
    ranked = sorted(patterns, key=lambda item: item.strength, reverse=True)
    return [item for item in ranked if item.strength >= min_strength][:limit]


def identify_significant_patterns(
    path: ReaderPath,
    nodes: dict[str, NodeState],
    *,
    min_strength: float = SIGNIFICANT_PATTERN_STRENGTH,
    limit: int = SIGNIFICANT_PATTERN_LIMIT,
) -> list[ReadingPattern]:
    return select_significant_patterns(analyze_path_patterns(path, nodes), min_strength=min_strength, limit=limit)


def _rhythm_kind(pattern: ReadingPattern) -> str | None:
    description = pattern.description.lower()
    if "fast" in description:
        return "fast"
    if "deep" in description:
        return "deep"
    return None


def create_transformation_conditions(
    patterns: list[ReadingPattern],
    attractor_engagements: list[AttractorEngagement],
    *,
    min_engagement_score: float = SIGNIFICANT_ENGAGEMENT_SCORE,
) -> list[PatternBasedCondition]:
    """Map detected patterns and strong engagements onto condition trees."""
    conditions: list[PatternBasedCondition] = []
    for pattern in patterns:
        if pattern.type == "sequence" and len(pattern.related_nodes) >= 2:
            conditions.append(
                PatternBasedCondition(
                    type="visit_pattern",
                    condition=TransformationCondition(visit_pattern=list(pattern.related_nodes)),
                    strength=pattern.strength,
                )
            )
        elif pattern.type == "character" and pattern.related_characters:
            conditions.append(
                PatternBasedCondition(
                    type="character_focus",
                    condition=TransformationCondition(
                        character_focus=CharacterFocusCondition(characters=list(pattern.related_characters))
                    ),
                    strength=pattern.strength,
                )
            )
        elif pattern.type == "temporal" and pattern.related_temporal_layers:
            conditions.append(
                PatternBasedCondition(
                    type="temporal_focus",
                    condition=TransformationCondition(temporal_position=pattern.related_temporal_layers[0]),
                    strength=pattern.strength,
                )
            )
        elif pattern.type == "rhythm":
            rhythm = _rhythm_kind(pattern)
            if rhythm is not None:
                # Rhythm has no condition leaf; the tag travels on the record.
                conditions.append(
                    PatternBasedCondition(
                        type="reading_rhythm",
                        condition=TransformationCondition(),
                        strength=pattern.strength,
                        rhythm=rhythm,
                    )
                )
        elif pattern.type == "thematic" and pattern.related_attractors:
            conditions.append(
                PatternBasedCondition(
                    type="attractor_affinity",
                    condition=TransformationCondition(strange_attractors_engaged=list(pattern.related_attractors)),
                    strength=pattern.strength,
                )
            )

    for engagement in attractor_engagements:
        if engagement.engagement_score < min_engagement_score:
            continue
        conditions.append(
            PatternBasedCondition(
                type="attractor_engagement",
                condition=TransformationCondition(strange_attractors_engaged=[engagement.attractor]),
                strength=engagement.engagement_score / 100,
            )
        )
    return conditions


def analyze_path(
    path: ReaderPath,
    nodes: dict[str, NodeState],
    *,
    min_pattern_strength: float = SIGNIFICANT_PATTERN_STRENGTH,
    pattern_limit: int = SIGNIFICANT_PATTERN_LIMIT,
) -> PathAnalysis:
    patterns = analyze_path_patterns(path, nodes)
    recursive_patterns = analyze_recursive_patterns(path)
    character_intensities = calculate_character_focus_intensity(path)
    attractor_nodes = identify_strange_attractor_nodes(path, nodes)
    temporal_jumping = analyze_temporal_jumping(path, nodes)
    return PathAnalysis(
        patterns=patterns,
        significant_patterns=select_significant_patterns(
            patterns, min_strength=min_pattern_strength, limit=pattern_limit
        ),
        attractor_engagements=calculate_attractor_engagement(path, nodes),
        recursive_patterns=recursive_patterns,
        character_intensities=character_intensities,
        attractor_nodes=attractor_nodes,
        temporal_jumping=temporal_jumping,
        fingerprint=generate_journey_fingerprint(
            path,
            patterns=patterns,
            recursive_patterns=recursive_patterns,
            character_intensities=character_intensities,
            attractor_nodes=attractor_nodes,
            temporal_jumping=temporal_jumping,
        ),
    )
