from __future__ import annotations

import random
import re
from dataclasses import dataclass

from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

MAX_SPECIFIC_EFFECTS = 2
MAX_GENERAL_EFFECTS = 1
MIN_SENTENCE_LENGTH = 10

TECHNICAL_WORDS = (
    "system", "process", "data", "algorithm", "compute", "execute",
    "protocol", "interface", "network", "digital", "binary", "code",
)
TIME_WORDS = (
    "past", "present", "future", "time", "when", "before", "after",
    "now", "then", "moment", "history", "ancient", "memory",
)
EMOTIONAL_WORDS = (
    "feel", "remember", "love", "fear", "hope", "dream", "wish",
    "heart", "soul", "mind", "consciousness", "awareness", "experience",
)
TEMPORAL_MARKER_TIMESTAMPS = ("2157.03.14", "1847.11.22", "2891.07.08", "0034.12.31", "3456.01.15")

# combining long stroke overlay
STRIKETHROUGH = "\u0336"

_EDGE_PUNCTUATION = re.compile(r"^[^\w]+|[^\w]+$")
_NON_WORD = re.compile(r"[^\w]")
_SENTENCE_END = re.compile(r"[.!?]+")


@dataclass(slots=True)
class CharacterBleedEffect:
    transformation: TextTransformation
    reason: str
    source_character: str
    target_character: str
    intensity: int

    @property
    def type(self) -> str:
        return self.transformation.type

    @property
    def selector(self) -> str:
        return self.transformation.selector


def _paragraphs(content: str) -> list[str]:
    return [part for part in content.split("\n\n") if part.strip()]


def _tokens(content: str) -> list[str]:
    return [token for token in (_EDGE_PUNCTUATION.sub("", raw) for raw in content.split()) if token]


def find_vocabulary_terms(content: str, vocabulary: tuple[str, ...], limit: int) -> list[str]:
    """First ``limit`` distinct tokens containing a vocabulary word, as written in ``content``."""
    found: list[str] = []
    for token in _tokens(content):
        lowered = token.lower()
        if token in found or not any(word in lowered for word in vocabulary):
            continue
        found.append(token)
        if len(found) >= limit:
            break
    return found


def find_repeated_words(content: str, limit: int = 2) -> list[str]:
    counts: dict[str, int] = {}
    first_seen: dict[str, str] = {}
    for token in _tokens(content):
        clean = _NON_WORD.sub("", token.lower())
        if len(clean) <= 3:
            continue
        counts[clean] = counts.get(clean, 0) + 1
        first_seen.setdefault(clean, _NON_WORD.sub("", token))
    return [first_seen[word] for word, count in counts.items() if count > 1][:limit]


def first_sentence(content: str) -> str | None:
    sentence = _SENTENCE_END.split(content)[0].strip()
    if len(sentence) > MIN_SENTENCE_LENGTH:
        return sentence
    return None


def count_character_transitions(path: ReaderPath, source: str, target: str) -> int:
    characters = path.character_sequence()
    return sum(
        1 for previous, current in zip(characters, characters[1:]) if previous == source and current == target
    )


class CharacterBleedCalculator:
    """Builds text effects for a change of narrative voice between consecutive visits."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def detect_transition(self, node: NodeState, path: ReaderPath) -> tuple[str, str] | None:
        previous = path.previous_visit()
        if previous is None or previous.character == node.character:
            return None
        return previous.character, node.character

    def calculate_bleed_effects(self, node: NodeState, path: ReaderPath) -> list[CharacterBleedEffect]:
        transition = self.detect_transition(node, path)
        if transition is None:
            return []
        source, target = transition
        logger.debug("character bleed %s -> %s node=%s", source, target, node.id)

        effects = self._specific_effects(source, target, node)[:MAX_SPECIFIC_EFFECTS]
        effects.extend(self._general_effects(source, target, node, path)[:MAX_GENERAL_EFFECTS])
        return effects

    def calculate_bleed_transformations(self, node: NodeState, path: ReaderPath) -> list[TextTransformation]:
        return [effect.transformation for effect in self.calculate_bleed_effects(node, path)]

    def _timestamp(self) -> str:
        return self._rng.choice(TEMPORAL_MARKER_TIMESTAMPS)

    def _specific_effects(self, source: str, target: str, node: NodeState) -> list[CharacterBleedEffect]:
        content = node.current_content or ""
        if not content:
            return []
        paragraphs = _paragraphs(content)
        effects: list[CharacterBleedEffect] = []

        def add(transformation: TextTransformation, reason: str, intensity: int) -> None:
            effects.append(
                CharacterBleedEffect(
                    transformation=transformation,
                    reason=reason,
                    source_character=source,
                    target_character=target,
                    intensity=intensity,
                )
            )

        if source == "Algorithm" and target == "Archaeologist":
            for term in find_vocabulary_terms(content, TECHNICAL_WORDS, 3):
                add(
                    TextTransformation(
                        type="fragment",
                        selector=term,
                        fragment_pattern=STRIKETHROUGH,
                        fragment_style="character",
                        intensity=3,
                    ),
                    "Algorithmic corruption bleeding into archaeological interpretation",
                    3,
                )
            if len(paragraphs) > 1:
                add(
                    TextTransformation(
                        type="metaComment",
                        selector=paragraphs[1],
                        replacement="data integrity compromised",
                        comment_style="marginalia",
                        intensity=2,
                    ),
                    "Algorithmic perspective introduces doubt about information reliability",
                    2,
                )
        elif source == "Algorithm" and target == "LastHuman":
            for word in find_repeated_words(content):
                add(
                    TextTransformation(type="emphasize", selector=word, emphasis="glitch", intensity=4),
                    "Algorithmic pattern recognition bleeding into human consciousness",
                    4,
                )
            if paragraphs:
                add(
                    TextTransformation(
                        type="expand",
                        selector=paragraphs[0],
                        replacement="[PATTERN_DETECTED: recursive_loop_identified]",
                        expand_style="inline",
                        intensity=3,
                    ),
                    "Algorithmic analysis intrudes on human experience",
                    3,
                )
        elif source == "Archaeologist" and target == "Algorithm":
            for term in find_vocabulary_terms(content, TIME_WORDS, 2):
                add(
                    TextTransformation(
                        type="replace",
                        selector=term,
                        replacement=f"{term}[TEMPORAL_MARKER:{self._timestamp()}]",
                        preserve_formatting=True,
                        intensity=3,
                    ),
                    "Archaeological time-consciousness bleeds into algorithmic processing",
                    3,
                )
            if len(paragraphs) > 2:
                add(
                    TextTransformation(
                        type="metaComment",
                        selector=paragraphs[2],
                        replacement="chronological displacement detected",
                        comment_style="interlinear",
                        intensity=2,
                    ),
                    "Archaeological temporal awareness influences algorithmic perception",
                    2,
                )
        elif source == "LastHuman" and target != "LastHuman":
            for term in find_vocabulary_terms(content, EMOTIONAL_WORDS, 2):
                add(
                    TextTransformation(type="emphasize", selector=term, emphasis="fade", intensity=2),
                    "Human memory and emotion bleeds into analytical perspective",
                    2,
                )
            if paragraphs:
                add(
                    TextTransformation(
                        type="expand",
                        selector=paragraphs[0],
                        replacement="(a memory surface, warm and fading)",
                        expand_style="append",
                        intensity=2,
                    ),
                    "Human experiential memory creates emotional overlay",
                    2,
                )
        return effects

    def _general_effects(
        self,
        source: str,
        target: str,
        node: NodeState,
        path: ReaderPath,
    ) -> list[CharacterBleedEffect]:
        sentence = first_sentence(node.current_content or "")
        if sentence is None:
            return []
        intensity = min(5, max(1, count_character_transitions(path, source, target) // 2 + 1))
        return [
            CharacterBleedEffect(
                transformation=TextTransformation(
                    type="metaComment",
                    selector=sentence,
                    replacement=f"perspective shift: {source} → {target}",
                    comment_style="marginalia",
                    intensity=intensity,
                ),
                reason="Character transition creates perspective shift awareness",
                source_character=source,
                target_character=target,
                intensity=intensity,
            )
        ]
