from narramorph.modules.reader.models import ReaderPath, temporal_label
from narramorph.modules.reader.state import (
    engage_attractor,
    lifecycle_for_visit_count,
    record_visit,
    update_endpoint_progress,
    visit_node,
)
from tests.support.journeys import make_node, registry, walk


def test_temporal_label_buckets() -> None:
    assert [temporal_label(value) for value in (1, 3, 4, 6, 7, 10)] == [
        "past",
        "past",
        "present",
        "present",
        "future",
        "future",
    ]


def test_lifecycle_follows_default_thresholds() -> None:
    assert lifecycle_for_visit_count(0) == "unvisited"
    assert lifecycle_for_visit_count(1) == "visited"
    assert lifecycle_for_visit_count(2) == "revisited"
    assert lifecycle_for_visit_count(4) == "complex"
    assert lifecycle_for_visit_count(7) == "fragmented"


def test_record_visit_updates_counters_without_mutating_input() -> None:
    node = make_node("n1", "Algorithm", 5)
    empty = ReaderPath()
    path = record_visit(empty, node)
    path = record_visit(path, node, duration_ms=1000)

    assert empty.sequence == []
    assert path.sequence == ["n1", "n1"]
    assert path.revisit_patterns == {"n1": 2}
    assert path.character_focus == {"Algorithm": 2}
    assert path.temporal_layer_focus == {"present": 2}
    assert [visit.index for visit in path.detailed_visits] == [0, 1]
    assert path.detailed_visits[0].duration_ms == 1000
    assert len(path.transitions) == 1
    assert path.reading_rhythm is not None
    assert path.reading_rhythm.fast_transitions == 1
    assert path.reading_rhythm.deep_engagements == 0


def test_long_stay_counts_as_deep_engagement() -> None:
    nodes = registry(make_node("a"), make_node("b"))
    path, _ = walk(nodes, ["a", "b"], durations=[None, 180_000])
    assert path.reading_rhythm.deep_engagements == 1
    assert path.reading_rhythm.fast_transitions == 0


def test_engage_attractor_marks_last_visit_and_transition() -> None:
    nodes = registry(make_node("a"), make_node("b"))
    path, _ = walk(nodes, ["a", "b"])
    path = engage_attractor(path, "memory-fragment")
    path = engage_attractor(path, "memory-fragment")

    assert path.attractors_engaged == {"memory-fragment": 2}
    assert path.detailed_visits[-1].engaged_attractors == ["memory-fragment"]
    assert path.transitions[-1].attractors_engaged == ["memory-fragment"]
    assert engage_attractor(path, "  ") is path


def test_endpoint_progress_is_clamped() -> None:
    path = update_endpoint_progress(ReaderPath(), "future", 140)
    assert path.endpoint_progress["future"] == 100.0
    assert ReaderPath(endpoint_progress={"past": -5}).endpoint_progress == {"past": 0.0}


def test_visit_node_advances_lifecycle() -> None:
    node = make_node("a")
    path, node = visit_node(ReaderPath(), node, attractors=["recursion-pattern"])
    path, node = visit_node(path, node)
    assert node.visit_count == 2
    assert node.current_state == "revisited"
    assert path.attractors_engaged == {"recursion-pattern": 1}
