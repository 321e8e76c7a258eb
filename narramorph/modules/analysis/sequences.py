from __future__ import annotations

from narramorph.modules.analysis.models import ReadingPattern, RecursivePattern
from narramorph.modules.reader.models import ReaderPath

MIN_SEQUENCE_LENGTH = 2
MAX_SEQUENCE_LENGTH = 4
SEQUENCE_REPETITION_THRESHOLD = 2


def _occurrence_index(sequence: list[str], length: int) -> dict[tuple[str, ...], list[int]]:
    """Start indices of every contiguous window of ``length``, in first-seen order."""
    index: dict[tuple[str, ...], list[int]] = {}
    for start in range(0, len(sequence) - length + 1):
        window = tuple(sequence[start:start + length])
        index.setdefault(window, []).append(start)
    return index


def repeated_windows(
    sequence: list[str],
    *,
    min_length: int = MIN_SEQUENCE_LENGTH,
    max_length: int = MAX_SEQUENCE_LENGTH,
) -> list[tuple[tuple[str, ...], list[int]]]:
    found: list[tuple[tuple[str, ...], list[int]]] = []
    for length in range(min_length, max_length + 1):
        if length > len(sequence):
            break
        for window, starts in _occurrence_index(sequence, length).items():
            if len(starts) >= SEQUENCE_REPETITION_THRESHOLD:
                found.append((window, starts))
    return found


def sequence_strength(window_length: int, occurrences: int, path_length: int) -> float:
    if path_length <= 0 or window_length <= 0:
        return 0.0
    max_possible_length = max(1, path_length // 2)
    max_possible_occurrences = max(1, path_length // window_length)
    length_factor = window_length / max_possible_length
    repetition_factor = min(1.0, occurrences / max_possible_occurrences)
    return min(1.0, length_factor * 0.4 + repetition_factor * 0.6)


def identify_repeated_sequences(path: ReaderPath) -> list[ReadingPattern]:
    sequence = list(path.sequence)
    patterns: list[ReadingPattern] = []
    for window, starts in repeated_windows(sequence):
        occurrences = len(starts)
        patterns.append(
            ReadingPattern(
                type="sequence",
                strength=sequence_strength(len(window), occurrences, len(sequence)),
                description=f"Repeated sequence {' → '.join(window)} visited {occurrences} times",
                related_nodes=list(window),
                occurrences=occurrences,
            )
        )
    return patterns


def analyze_recursive_patterns(
    path: ReaderPath,
    *,
    max_length: int = MAX_SEQUENCE_LENGTH,
) -> list[RecursivePattern]:
    sequence = list(path.sequence)
    total = len(sequence)
    patterns: list[RecursivePattern] = []
    for window, starts in repeated_windows(sequence, max_length=max_length):
        length = len(window)
        occurrences = len(starts)
        frequency_factor = min(1.0, occurrences / max(1, total // length))
        recency_factor = min(1.0, (starts[-1] + length) / total)
        gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
        expected_gap = total / occurrences
        temporal_spread = (sum(gaps) / len(gaps)) / expected_gap if gaps and expected_gap > 0 else 0.0
        patterns.append(
            RecursivePattern(
                sequence=list(window),
                length=length,
                occurrences=occurrences,
                strength=round(0.7 * frequency_factor + 0.3 * recency_factor, 6),
                first_occurrence_index=starts[0],
                last_occurrence_index=starts[-1],
                temporal_spread=round(temporal_spread, 6),
            )
        )
    return sorted(patterns, key=lambda item: (-item.strength, item.first_occurrence_index, item.length))
