from __future__ import annotations

import re

from narramorph.modules.content.schemas import ContentSelectionContext, EnhancedContent
from narramorph.modules.reader.models import NodeState, ReaderPath
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

DELIMITER_PATTERN = re.compile(r"^---(?:\[(\d+)\]|([A-Za-z0-9_]+(?:-[A-Za-z0-9_]+)*))(?:---)?[ \t]*$", re.MULTILINE)

RECURSIVE_AWARENESS_THRESHOLD = 0.7
ATTRACTOR_ENGAGEMENT_THRESHOLD = 3
SELECTION_WINDOW = 5

CHARACTER_BLEED_SECTIONS = {
    "Algorithm": "after-algorithm",
    "LastHuman": "after-last-human",
    "Archaeologist": "after-archaeologist",
}
ATTRACTOR_SECTIONS = {
    "recursion-pattern": "recursion-pattern-engaged",
    "recursive-loop": "recursion-pattern-engaged",
    "memory-fragment": "memory-fragment-engaged",
    "memory-artifact": "memory-fragment-engaged",
    "quantum-perception": "quantum-awareness",
    "quantum-uncertainty": "quantum-awareness",
}


def parse_content_variants(raw: str) -> EnhancedContent:
    """Split annotated source text into its base and its variants.

    A delimiter must sit on a line of its own: ``---[N]---`` starts the
    variant shown from visit ``N`` on, ``---name---`` starts a named section.
    The trailing ``---`` may be omitted.
    """
    matches = list(DELIMITER_PATTERN.finditer(raw or ""))
    if not matches:
        return EnhancedContent(base=(raw or "").strip())

    base = raw[: matches[0].start()].strip()
    visit_variants: dict[int, str] = {}
    sections: dict[str, str] = {}
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(raw)
        body = raw[match.end():end].strip()
        count, name = match.group(1), match.group(2)
        if count is not None:
            visit_variants[int(count)] = body
        else:
            sections[name] = body

    if not base:
        if visit_variants:
            base = visit_variants[min(visit_variants)]
        elif sections:
            base = next(iter(sections.values()))
    return EnhancedContent(base=base, visit_count_variants=visit_variants, section_variants=sections)


def upgrade_legacy_content(legacy: dict[int, str]) -> EnhancedContent:
    variants = {int(count): text for count, text in legacy.items() if int(count) != 0}
    return EnhancedContent(base=legacy.get(0, ""), visit_count_variants=variants)


def character_bleed_section(last_character: str | None) -> str | None:
    if last_character is None:
        return None
    return CHARACTER_BLEED_SECTIONS.get(last_character)


def detect_journey_section(context: ContentSelectionContext) -> str | None:
    if len(context.journey_pattern) < 3:
        return None
    characters = context.character_sequence[-3:]
    if len(characters) == 3 and len(set(characters)) == 1:
        return "character-focus"
    first, middle, last = context.journey_pattern[-3:]
    if first == last and first != middle:
        return "cyclical-pattern"
    return None


def detect_attractor_section(attractors_engaged: dict[str, int]) -> str | None:
    for attractor, count in attractors_engaged.items():
        if count >= ATTRACTOR_ENGAGEMENT_THRESHOLD and attractor in ATTRACTOR_SECTIONS:
            return ATTRACTOR_SECTIONS[attractor]
    return None


def select_visit_variant(variants: dict[int, str], visit_count: int | None) -> str | None:
    if not variants:
        return None
    count = max(0, visit_count or 0)
    eligible = [threshold for threshold in variants if threshold <= count]
    return variants[max(eligible) if eligible else max(variants)]


def select_content_variant(enhanced: EnhancedContent, context: ContentSelectionContext) -> str:
    sections = enhanced.section_variants

    last = context.last_visited_character
    if last is not None and last != context.current_character:
        section = character_bleed_section(last)
        if section and sections.get(section):
            logger.debug("variant selected section=%s reason=character_bleed", section)
            return sections[section]

    if context.recursive_awareness > RECURSIVE_AWARENESS_THRESHOLD and sections.get("recursive-awareness"):
        return sections["recursive-awareness"]

    journey = detect_journey_section(context)
    if journey and sections.get(journey):
        logger.debug("variant selected section=%s reason=journey", journey)
        return sections[journey]

    attractor = detect_attractor_section(context.attractors_engaged)
    if attractor and sections.get(attractor):
        logger.debug("variant selected section=%s reason=attractor", attractor)
        return sections[attractor]

    visit_variant = select_visit_variant(enhanced.visit_count_variants, context.visit_count)
    if visit_variant is not None:
        return visit_variant
    return enhanced.base or ""


def create_selection_context(
    node: NodeState,
    path: ReaderPath,
    nodes: dict[str, NodeState],
) -> ContentSelectionContext:
    sequence = path.sequence
    last_character = None
    if len(sequence) > 1:
        previous = nodes.get(sequence[-2])
        if previous is not None:
            last_character = previous.character

    characters = [nodes[node_id].character for node_id in sequence[-SELECTION_WINDOW:] if node_id in nodes]
    awareness = 1 - len(set(sequence)) / len(sequence) if sequence else 0.0
    return ContentSelectionContext(
        visit_count=node.visit_count,
        last_visited_character=last_character,
        current_character=node.character,
        journey_pattern=list(sequence[-SELECTION_WINDOW:]),
        character_sequence=characters,
        attractors_engaged=dict(path.attractors_engaged),
        recursive_awareness=awareness,
    )
