from __future__ import annotations

import re

from narramorph.modules.bleed.service import STRIKETHROUGH
from narramorph.modules.transform.schemas import TextTransformation
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

MIN_CONTENT_LENGTH = 10
MAX_SPAN_COUNT = 10

_TRANSFORM_SPAN = re.compile(
    r'<span[^>]*class="[^"]*(?:glitch-text|text-transformation|narramorph-|text-emphasis|text-expanded|'
    r'text-fragmented|text-commented|text-replaced)[^"]*"[^>]*>(.*?)</span>',
    re.DOTALL,
)
_DATA_SPAN = re.compile(r'<span[^>]*data-transform-type="[^"]*"[^>]*>(.*?)</span>', re.DOTALL)
_PERSPECTIVE_SHIFT = re.compile(r"perspective shift:\s*\w+\s*→\s*\w+\.?", re.IGNORECASE)
_SYSTEM_MARKERS = re.compile(
    r"\[(?:PATTERN_DETECTED|ANALYSIS_COMPLETE|DATA_INTEGRITY|TEMPORAL_MARKER)[^\[\]]*\]", re.IGNORECASE
)
_DEBUG_MARKERS = re.compile(r"\[(?:PATTERN_DETECTED|ANALYSIS_COMPLETE|DATA_INTEGRITY)[^\[\]]*\]", re.IGNORECASE)
_TEMPORAL_MARKER = re.compile(r"\[TEMPORAL_MARKER:[^\]]+\]", re.IGNORECASE)
_CHARACTER_SHIFT = re.compile(r"character perspective shift", re.IGNORECASE)
_RESONANCE = re.compile(r"strange attractor resonance:\s*[.\d/()]+\s*\w*", re.IGNORECASE)
_MALFORMED_SPAN = re.compile(r"<<\*\*span\*\*[^>]*>")
_EMPTY_ELEMENT = re.compile(r"<[^>]*></[^>]*>")
_WHITESPACE = re.compile(r"\s+")

_ORPHAN_FRAGMENTS = (
    re.compile(r"\(stable\)s\.?", re.IGNORECASE),
    re.compile(r"\(unstable\)\.?", re.IGNORECASE),
    re.compile(r"\([\w\s]+\)[a-z]\.?", re.IGNORECASE),
)
_SPACING_FIXES = (
    (re.compile(r"[ \t\f\v]+"), " "),
    (re.compile(r"([a-z])([A-Z])"), r"\1 \2"),
    (re.compile(r"([a-z])through\b", re.IGNORECASE), r"\1 through"),
    (re.compile(r"([a-z])and\b", re.IGNORECASE), r"\1 and"),
    (re.compile(r"\s*\.\s*\."), "."),
    (re.compile(r"\s*,\s*,"), ","),
    (re.compile(r"\s*;\s*;"), ";"),
    (re.compile(r"[ \t]+([.,;!?])"), r"\1"),
    (re.compile(r"\n\s*\n\s*\n"), "\n\n"),
)


def strip_transformation_markup(content: str) -> str:
    """Reduce transformed content back to plain narrative text on a single line."""
    if not content:
        return ""
    cleaned = _TRANSFORM_SPAN.sub(r"\1", content)
    cleaned = _DATA_SPAN.sub(r"\1", cleaned)
    cleaned = _PERSPECTIVE_SHIFT.sub("", cleaned)
    cleaned = _SYSTEM_MARKERS.sub("", cleaned)
    cleaned = _CHARACTER_SHIFT.sub("", cleaned)
    cleaned = _RESONANCE.sub("", cleaned)
    cleaned = _MALFORMED_SPAN.sub("", cleaned)
    cleaned = cleaned.replace(STRIKETHROUGH, "")
    cleaned = _EMPTY_ELEMENT.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    logger.debug("stripped transformation markup %s -> %s chars", len(content), len(cleaned))
    return cleaned


def is_content_corrupted(content: str) -> bool:
    if not content:
        return True
    return any(
        (
            "[object Object]" in content,
            "undefined" in content,
            '<span class="glitch-text"><span class="glitch-text">' in content,
            _MALFORMED_SPAN.search(content) is not None,
            len(content) < MIN_CONTENT_LENGTH,
            content.count("<span") >= MAX_SPAN_COUNT,
        )
    )


def final_text_cleanup(text: str) -> str:
    """Remove diagnostic markers left in reader-facing text, keeping paragraph breaks."""
    if not text:
        return ""
    cleaned = _PERSPECTIVE_SHIFT.sub("", text)
    cleaned = _TEMPORAL_MARKER.sub("", cleaned)
    cleaned = _RESONANCE.sub("", cleaned)
    cleaned = _DEBUG_MARKERS.sub("", cleaned)
    cleaned = _CHARACTER_SHIFT.sub("", cleaned)
    for pattern in _ORPHAN_FRAGMENTS:
        cleaned = pattern.sub("", cleaned)
    for pattern, replacement in _SPACING_FIXES:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n")).strip()
    logger.debug("final text cleanup %s -> %s chars", len(text), len(cleaned))
    return cleaned


def generate_transformation_id(transformation: TextTransformation) -> str:
    selector = transformation.selector[:20] or "unknown"
    return f"{transformation.type}-{selector}-{transformation.priority or 'medium'}"
