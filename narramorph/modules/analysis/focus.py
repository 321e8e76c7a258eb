from __future__ import annotations

from statistics import mean, pstdev

from narramorph.modules.analysis.models import (
    CharacterFocusIntensity,
    ReadingPattern,
    StrangeAttractorNode,
)
from narramorph.modules.reader.models import NodeState, ReaderPath, TEMPORAL_LABELS

CHARACTER_FOCUS_THRESHOLD = 0.4
TEMPORAL_FOCUS_THRESHOLD = 0.4
ATTRACTOR_AFFINITY_THRESHOLD = 0.25
THEMATIC_CONTINUITY_THRESHOLD = 0.5
THEMATIC_CONTINUITY_WINDOW = 10
OSCILLATION_THRESHOLD = 0.3
PROGRESSION_THRESHOLD = 0.3
MIN_PROGRESSION_SAMPLES = 5

_CHRONOLOGICAL = ("past", "present", "future")
_REVERSE_CHRONOLOGICAL = ("future", "present", "past")


def _focus_strength(ratio: float, threshold: float) -> float:
    above = (ratio - threshold) / (1.0 - threshold)
    return min(1.0, 0.5 + 0.5 * above)


def identify_character_focus_patterns(path: ReaderPath) -> list[ReadingPattern]:
    total_visits = path.total_visits()
    if total_visits <= 0 or not path.character_focus:
        return []

    patterns: list[ReadingPattern] = []
    for character, count in path.character_focus.items():
        ratio = int(count) / total_visits
        if ratio >= CHARACTER_FOCUS_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="character",
                    strength=_focus_strength(ratio, CHARACTER_FOCUS_THRESHOLD),
                    description=f"Strong focus on {character} perspective ({round(ratio * 100)}% of visits)",
                    related_characters=[character],
                )
            )

    characters = path.character_sequence()
    if len(characters) >= 4:
        oscillations = 0
        for i in range(len(characters) - 3):
            first, second = characters[i], characters[i + 1]
            if first != second and characters[i + 2] == first and characters[i + 3] == second:
                oscillations += 1
        ratio = oscillations / max(1, (len(characters) - 3) // 2)
        if ratio >= OSCILLATION_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="character",
                    strength=min(1.0, ratio),
                    description="Pattern of alternating between character perspectives",
                    related_characters=list(dict.fromkeys(characters)),
                )
            )
    return patterns


def _progression_ratio(layers: list[str], order: tuple[str, str, str]) -> float:
    start, middle, end = order
    matches = 0
    for i in range(len(layers) - 2):
        t1, t2, t3 = layers[i], layers[i + 1], layers[i + 2]
        if (t1 == start and t2 == middle) or (t2 == middle and t3 == end):
            matches += 1
    return matches / max(1, len(layers) - 2)


def identify_temporal_layer_patterns(path: ReaderPath) -> list[ReadingPattern]:
    total_visits = path.total_visits()
    if total_visits <= 0 or not path.temporal_layer_focus:
        return []

    patterns: list[ReadingPattern] = []
    for layer, count in path.temporal_layer_focus.items():
        ratio = int(count) / total_visits
        if ratio >= TEMPORAL_FOCUS_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="temporal",
                    strength=_focus_strength(ratio, TEMPORAL_FOCUS_THRESHOLD),
                    description=f"Strong focus on {layer} temporal layer ({round(ratio * 100)}% of visits)",
                    related_temporal_layers=[layer],
                )
            )

    layers = path.temporal_sequence()
    if len(layers) >= MIN_PROGRESSION_SAMPLES:
        forward = _progression_ratio(layers, _CHRONOLOGICAL)
        if forward >= PROGRESSION_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="temporal",
                    strength=min(1.0, forward),
                    description="Pattern of chronological progression through time",
                    related_temporal_layers=list(_CHRONOLOGICAL),
                )
            )
        backward = _progression_ratio(layers, _REVERSE_CHRONOLOGICAL)
        if backward >= PROGRESSION_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="temporal",
                    strength=min(1.0, backward),
                    description="Pattern of reverse chronological movement through time",
                    related_temporal_layers=list(_REVERSE_CHRONOLOGICAL),
                )
            )
    return patterns


def nodes_with_attractor(nodes: dict[str, NodeState], attractor: str) -> list[str]:
    return [node.id for node in nodes.values() if attractor in node.strange_attractors]


def identify_attractor_affinity_patterns(path: ReaderPath, nodes: dict[str, NodeState]) -> list[ReadingPattern]:
    total_engagements = sum(int(count) for count in path.attractors_engaged.values())
    if total_engagements <= 0:
        return []

    visits = path.detailed_visits
    patterns: list[ReadingPattern] = []
    for attractor, count in path.attractors_engaged.items():
        share = int(count) / total_engagements
        if share < ATTRACTOR_AFFINITY_THRESHOLD:
            continue
        related_nodes = nodes_with_attractor(nodes, attractor)
        visit_ratio = 0.0
        if related_nodes and visits:
            related = set(related_nodes)
            visit_ratio = sum(1 for visit in visits if visit.node_id in related) / len(visits)
        patterns.append(
            ReadingPattern(
                type="thematic",
                strength=min(1.0, share * 0.7 + visit_ratio * 0.3),
                description=f'Strong affinity for "{attractor}" concept/theme',
                related_nodes=related_nodes,
                related_attractors=[attractor],
            )
        )

    if len(visits) >= 3:
        recent = visits[-THEMATIC_CONTINUITY_WINDOW:]
        shared_transitions = 0
        for previous, current in zip(recent, recent[1:]):
            previous_tags = set(nodes[previous.node_id].strange_attractors) if previous.node_id in nodes else set()
            current_tags = set(nodes[current.node_id].strange_attractors) if current.node_id in nodes else set()
            if previous_tags & current_tags:
                shared_transitions += 1
        continuity = shared_transitions / (len(recent) - 1)
        if continuity >= THEMATIC_CONTINUITY_THRESHOLD:
            patterns.append(
                ReadingPattern(
                    type="thematic",
                    strength=continuity,
                    description="Pattern of following thematic connections between nodes",
                )
            )
    return patterns


def identify_reading_rhythm_patterns(path: ReaderPath) -> list[ReadingPattern]:
    rhythm = path.reading_rhythm
    visits = path.detailed_visits
    total_transitions = len(path.transitions)
    if rhythm is None or len(visits) < 3 or total_transitions <= 0:
        return []

    fast_ratio = rhythm.fast_transitions / total_transitions
    deep_ratio = rhythm.deep_engagements / len(visits)
    patterns: list[ReadingPattern] = []
    if fast_ratio >= 0.7:
        patterns.append(
            ReadingPattern(
                type="rhythm",
                strength=min(1.0, fast_ratio),
                description="Fast skimming pattern with quick transitions between nodes",
            )
        )
    if deep_ratio >= 0.3:
        patterns.append(
            ReadingPattern(
                type="rhythm",
                strength=min(1.0, deep_ratio),
                description="Deep engagement pattern with extended time spent on nodes",
            )
        )
    if fast_ratio >= 0.4 and deep_ratio >= 0.2:
        patterns.append(
            ReadingPattern(
                type="rhythm",
                strength=min(1.0, min(fast_ratio, deep_ratio) * 2),
                description="Inconsistent rhythm alternating between fast skimming and deep engagement",
            )
        )

    durations = [visit.duration_ms for visit in visits if visit.duration_ms]
    if len(durations) >= 5:
        pairs = list(zip(durations, durations[1:]))
        if all(later < earlier for earlier, later in pairs):
            patterns.append(
                ReadingPattern(
                    type="rhythm",
                    strength=0.8,
                    description="Accelerating pattern with progressively shorter node visits",
                )
            )
        elif all(later > earlier for earlier, later in pairs):
            patterns.append(
                ReadingPattern(
                    type="rhythm",
                    strength=0.8,
                    description="Decelerating pattern with progressively longer node visits",
                )
            )
    return patterns


def _longest_streak(characters: list[str], character: str) -> int:
    best = 0
    current = 0
    for item in characters:
        current = current + 1 if item == character else 0
        best = max(best, current)
    return best


def calculate_character_focus_intensity(path: ReaderPath) -> list[CharacterFocusIntensity]:
    visits = path.detailed_visits
    if not visits:
        return []

    characters = [visit.character for visit in visits]
    results: list[CharacterFocusIntensity] = []
    for character in dict.fromkeys(characters):
        count = characters.count(character)
        visit_ratio = count / len(visits)
        streak = _longest_streak(characters, character)
        layers = [layer for layer in TEMPORAL_LABELS if any(
            visit.character == character and visit.temporal_layer == layer for visit in visits
        )]
        intensity = (
            min(1.0, visit_ratio * 2) * 0.5
            + min(1.0, streak / 5) * 0.3
            + (len(layers) / 3) * 0.2
        )
        results.append(
            CharacterFocusIntensity(
                character=character,
                intensity=round(min(1.0, intensity), 6),
                visit_ratio=round(visit_ratio, 6),
                longest_streak=streak,
                temporal_layers=layers,
            )
        )
    return sorted(results, key=lambda item: item.intensity, reverse=True)


def identify_strange_attractor_nodes(path: ReaderPath, nodes: dict[str, NodeState]) -> list[StrangeAttractorNode]:
    sequence = list(path.sequence)
    total = len(sequence)
    positions: dict[str, list[int]] = {}
    for index, node_id in enumerate(sequence):
        positions.setdefault(node_id, []).append(index)

    results: list[StrangeAttractorNode] = []
    for node_id, indices in positions.items():
        if len(indices) < 2:
            continue
        gaps = [later - earlier for earlier, later in zip(indices, indices[1:])]
        average_gap = mean(gaps)
        if len(gaps) == 1:
            gap_consistency = 1.0
        else:
            gap_consistency = max(0.0, 1.0 - min(1.0, pstdev(gaps) / average_gap))
        frequency_factor = min(1.0, len(gaps) / 4)
        recency = (indices[-1] + 1) / total
        strength = 0.5 * frequency_factor + 0.3 * gap_consistency + 0.2 * recency
        node = nodes.get(node_id)
        results.append(
            StrangeAttractorNode(
                node_id=node_id,
                visit_count=len(indices),
                return_count=len(gaps),
                average_return_gap=round(float(average_gap), 6),
                magnetic_strength=round(strength, 6),
                attractors=list(node.strange_attractors) if node is not None else [],
            )
        )
    return sorted(results, key=lambda item: (item.magnetic_strength, item.node_id), reverse=True)
