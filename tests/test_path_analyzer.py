import pytest

from narramorph.modules.analysis.engagement import calculate_attractor_engagement, engagement_trend
from narramorph.modules.analysis.focus import (
    calculate_character_focus_intensity,
    identify_attractor_affinity_patterns,
    identify_character_focus_patterns,
    identify_reading_rhythm_patterns,
    identify_strange_attractor_nodes,
)
from narramorph.modules.analysis.models import ReadingPattern
from narramorph.modules.analysis.path_analyzer import (
    analyze_path,
    analyze_path_patterns,
    create_transformation_conditions,
    select_significant_patterns,
)
from narramorph.modules.analysis.temporal import analyze_temporal_jumping
from narramorph.modules.reader.models import NodeVisit, ReaderPath
from tests.support.journeys import make_node, path_of, registry, walk


def test_character_focus_strength_scales_above_threshold() -> None:
    nodes = registry(
        make_node("a", "Algorithm"),
        make_node("b", "Algorithm"),
        make_node("c", "Algorithm"),
        make_node("d", "Archaeologist"),
    )
    path, _ = walk(nodes, ["a", "b", "c", "d"])

    patterns = identify_character_focus_patterns(path)

    assert len(patterns) == 1
    assert patterns[0].related_characters == ["Algorithm"]
    assert patterns[0].strength == pytest.approx(0.5 + 0.5 * (0.75 - 0.4) / 0.6)
    assert "75%" in patterns[0].description


def test_alternating_perspectives_form_oscillation_pattern() -> None:
    nodes = registry(make_node("a", "Algorithm"), make_node("b", "LastHuman"))
    path, _ = walk(nodes, ["a", "b", "a", "b", "a", "b"])

    oscillation = [
        pattern for pattern in identify_character_focus_patterns(path) if "alternating" in pattern.description
    ]

    assert len(oscillation) == 1
    assert oscillation[0].strength == 1.0
    assert oscillation[0].related_characters == ["Algorithm", "LastHuman"]


def test_temporal_jumping_tracks_direction_and_distance() -> None:
    nodes = registry(make_node("t1", temporal_value=1), make_node("t9", temporal_value=9),
                     make_node("t2", temporal_value=2), make_node("t8", temporal_value=8))
    path, _ = walk(nodes, ["t1", "t9", "t2", "t8"])

    jumping = analyze_temporal_jumping(path, nodes)

    assert jumping.total_jumps == 3
    assert jumping.forward_jumps == 2
    assert jumping.backward_jumps == 1
    assert jumping.preferred_jump_direction == "forward"
    assert jumping.average_jump_distance == pytest.approx(7.0)
    assert jumping.max_jump_distance == 8
    assert jumping.jump_frequency == pytest.approx(1.0)
    assert jumping.temporal_anchoring == {"past": 0.5, "present": 0.0, "future": 0.5}
    assert jumping.volatility > 0


def test_temporal_jumping_without_visits_is_empty() -> None:
    jumping = analyze_temporal_jumping(ReaderPath(), {})
    assert jumping.total_jumps == 0
    assert jumping.preferred_jump_direction == "mixed"


def test_temporal_value_falls_back_to_bucket_midpoint() -> None:
    path = ReaderPath(
        sequence=["x", "y"],
        detailed_visits=[
            NodeVisit(node_id="x", character="Algorithm", temporal_layer="past", index=0),
            NodeVisit(node_id="y", character="Algorithm", temporal_layer="future", index=1),
        ],
    )
    jumping = analyze_temporal_jumping(path, {})
    assert jumping.max_jump_distance == 6


def test_attractor_engagement_scores_share_recency_and_consistency() -> None:
    nodes = registry(
        make_node("a", attractors=["memory-fragment"]),
        make_node("b", attractors=["recursion-pattern"]),
    )
    path, _ = walk(nodes, ["a", "b", "a"], engage=True)

    engagements = calculate_attractor_engagement(path, nodes)

    assert [item.attractor for item in engagements] == ["memory-fragment", "recursion-pattern"]
    assert engagements[0].engagement_score == pytest.approx(80.0)
    assert engagements[0].total_engagements == 2
    assert engagements[0].first_engagement == 0
    assert engagements[0].last_engagement == 2
    assert engagements[0].related_nodes == ["a"]
    assert engagements[1].engagement_score == pytest.approx(30.0)
    assert all(0 <= item.engagement_score <= 100 for item in engagements)


def test_engagement_trend_compares_halves() -> None:
    def visits(indices):
        return [NodeVisit(node_id="n", character="Algorithm", temporal_layer="past", index=i) for i in indices]

    assert engagement_trend(visits([0, 1])) == "stable"
    assert engagement_trend(visits([0, 10, 11, 12])) == "rising"
    assert engagement_trend(visits([0, 1, 2, 12])) == "falling"


def test_attractor_affinity_and_thematic_continuity() -> None:
    nodes = registry(
        make_node("a", attractors=["memory-fragment"]),
        make_node("b", attractors=["memory-fragment", "system-decay"]),
        make_node("c", attractors=["memory-fragment"]),
    )
    path, _ = walk(nodes, ["a", "b", "c"], engage=True)

    patterns = identify_attractor_affinity_patterns(path, nodes)
    affinity = {tuple(item.related_attractors): item for item in patterns if item.related_attractors}

    assert ("memory-fragment",) in affinity
    assert affinity[("memory-fragment",)].strength == pytest.approx(0.75 * 0.7 + 1.0 * 0.3)
    continuity = [item for item in patterns if not item.related_attractors]
    assert len(continuity) == 1
    assert continuity[0].strength == 1.0


def test_fast_rhythm_detected_from_transition_durations() -> None:
    nodes = registry(make_node("a"), make_node("b"), make_node("c"), make_node("d"))
    path, _ = walk(nodes, ["a", "b", "c", "d"], durations=[None, 1000, 2000, 3000])

    patterns = identify_reading_rhythm_patterns(path)

    assert [item.description.split()[0] for item in patterns] == ["Fast"]
    assert patterns[0].strength == 1.0


def test_character_intensity_blends_ratio_streak_and_layers() -> None:
    nodes = registry(make_node("a", "Algorithm", 2), make_node("b", "Algorithm", 5), make_node("c", "LastHuman", 9))
    path, _ = walk(nodes, ["a", "b", "c"])

    intensities = calculate_character_focus_intensity(path)

    assert intensities[0].character == "Algorithm"
    assert intensities[0].longest_streak == 2
    assert intensities[0].temporal_layers == ["past", "present"]
    assert intensities[0].intensity == pytest.approx(1.0 * 0.5 + 0.4 * 0.3 + (2 / 3) * 0.2)


def test_strange_attractor_node_strength() -> None:
    path = path_of(["a", "b", "a", "c", "a"])
    nodes = identify_strange_attractor_nodes(path, {})
    assert [item.node_id for item in nodes] == ["a"]
    assert nodes[0].return_count == 2
    assert nodes[0].average_return_gap == 2.0
    assert nodes[0].magnetic_strength == pytest.approx(0.75)


def test_analysis_needs_two_visits() -> None:
    assert analyze_path_patterns(path_of(["a"]), {}) == []


def test_analysis_is_deterministic() -> None:
    nodes = registry(
        make_node("a", "Algorithm", 1, attractors=["recursion-pattern"]),
        make_node("b", "LastHuman", 9, attractors=["recursion-pattern", "memory-fragment"]),
        make_node("c", "Archaeologist", 5),
    )
    path, current = walk(nodes, ["a", "b", "c", "a", "b", "a"], engage=True, durations=[None, 500, 200000, 300, 400, 900])

    first = analyze_path(path, current)
    second = analyze_path(path, current)

    assert first == second
    assert first.fingerprint.fingerprint_id.startswith("journey-")
    assert len(first.fingerprint.fingerprint_id) == len("journey-") + 12
    assert first.fingerprint.total_visits == 6
    assert first.fingerprint.unique_nodes == 3


def test_fingerprint_id_changes_with_path() -> None:
    first = analyze_path(path_of(["a", "b", "a"]), {})
    second = analyze_path(path_of(["a", "b", "c"]), {})
    assert first.fingerprint.fingerprint_id != second.fingerprint.fingerprint_id


def test_significant_patterns_filter_and_limit() -> None:
    patterns = [ReadingPattern(type="sequence", strength=value, description=str(value)) for value in (0.2, 0.9, 0.7, 0.65, 0.61, 0.95, 0.8)]
    selected = select_significant_patterns(patterns, min_strength=0.6, limit=5)
    assert [item.strength for item in selected] == [0.95, 0.9, 0.8, 0.7, 0.65]


def test_transformation_conditions_from_patterns() -> None:
    patterns = [
        ReadingPattern(type="sequence", strength=0.9, description="seq", related_nodes=["a", "b"]),
        ReadingPattern(type="character", strength=0.8, description="char", related_characters=["Algorithm"]),
        ReadingPattern(type="temporal", strength=0.7, description="time", related_temporal_layers=["past"]),
        ReadingPattern(type="rhythm", strength=0.9, description="Fast skimming pattern"),
        ReadingPattern(type="thematic", strength=0.7, description="theme", related_attractors=["memory-fragment"]),
    ]

    conditions = create_transformation_conditions(patterns, [])

    assert [item.type for item in conditions] == [
        "visit_pattern",
        "character_focus",
        "temporal_focus",
        "reading_rhythm",
        "attractor_affinity",
    ]
    assert conditions[0].condition.visit_pattern == ["a", "b"]
    assert conditions[1].condition.character_focus.characters == ["Algorithm"]
    assert conditions[2].condition.temporal_position == "past"
    assert conditions[3].rhythm == "fast"
    assert conditions[3].condition.is_empty()
    assert conditions[4].condition.strange_attractors_engaged == ["memory-fragment"]
