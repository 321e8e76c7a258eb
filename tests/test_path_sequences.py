import pytest

from narramorph.modules.analysis.sequences import (
    analyze_recursive_patterns,
    identify_repeated_sequences,
    sequence_strength,
)
from tests.support.journeys import path_of


def _by_nodes(patterns):
    return {tuple(pattern.related_nodes): pattern for pattern in patterns}


def test_alternating_path_reports_both_pairs() -> None:
    patterns = _by_nodes(identify_repeated_sequences(path_of(["a", "b", "a", "b", "a", "b"])))

    assert patterns[("a", "b")].occurrences == 3
    assert patterns[("b", "a")].occurrences == 2
    assert patterns[("a", "b")].strength == pytest.approx(0.4 * 2 / 3 + 0.6)
    assert patterns[("b", "a")].strength == pytest.approx(0.4 * 2 / 3 + 0.6 * 2 / 3)
    assert all(pattern.strength > 0 for pattern in patterns.values())
    assert all(pattern.occurrences >= 2 for pattern in patterns.values())


def test_longer_windows_are_detected_up_to_four() -> None:
    patterns = _by_nodes(identify_repeated_sequences(path_of(["a", "b", "a", "b", "a", "b"])))
    assert ("a", "b", "a") in patterns
    assert ("a", "b", "a", "b") in patterns
    assert all(2 <= len(key) <= 4 for key in patterns)


def test_single_occurrence_is_not_a_pattern() -> None:
    assert identify_repeated_sequences(path_of(["a", "b", "c", "d"])) == []
    assert identify_repeated_sequences(path_of(["a"])) == []


def test_strength_never_drops_when_occurrences_grow() -> None:
    strengths = [sequence_strength(2, occurrences, 12) for occurrences in range(2, 8)]
    assert strengths == sorted(strengths)

    twice = _by_nodes(identify_repeated_sequences(path_of(["a", "b", "c", "d", "a", "b", "e", "f"])))
    thrice = _by_nodes(identify_repeated_sequences(path_of(["a", "b", "a", "b", "e", "f", "a", "b"])))
    assert thrice[("a", "b")].strength >= twice[("a", "b")].strength


def test_recursive_patterns_are_ranked_by_strength() -> None:
    patterns = analyze_recursive_patterns(path_of(["a", "b", "a", "b", "a", "b"]))
    top = patterns[0]

    assert top.sequence == ["a", "b"]
    assert top.occurrences == 3
    assert top.first_occurrence_index == 0
    assert top.last_occurrence_index == 4
    assert top.strength == pytest.approx(1.0)
    assert [item.strength for item in patterns] == sorted((item.strength for item in patterns), reverse=True)
