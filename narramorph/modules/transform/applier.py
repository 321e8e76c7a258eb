from __future__ import annotations

import hashlib
import random
import re
from collections.abc import Callable

from narramorph.modules.transform.schemas import TextTransformation, priority_hint_value, transformation_key
from narramorph.utils.cache import LRUCache
from narramorph.utils.logging import get_logger

logger = get_logger(__name__)

TRANSFORM_MARKERS = ("data-transform-type", "narramorph-")
FOOTNOTE_BLOCK_OPEN = '<div class="narramorph-footnotes">'

_FORMAT_MARKERS = re.compile(r"(\*\*|\*|__|_|```|`)")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def carries_transform_markers(content: str) -> bool:
    return any(marker in content for marker in TRANSFORM_MARKERS)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_short_hash(text: str) -> str:
    """Six-character base36 digest of ``text`` using a 32-bit rolling hash."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))[:6]


def _seeded_rng(selector: str, pattern: str) -> random.Random:
    digest = hashlib.sha256(f"{selector}\x00{pattern}".encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


def render_replace(transformation: TextTransformation) -> str:
    replacement = transformation.replacement or ""
    selector = transformation.selector
    if transformation.preserve_formatting and any(marker in selector for marker in ("*", "_", "`")):
        for marker in _FORMAT_MARKERS.findall(selector):
            if marker not in replacement:
                replacement = f"{marker}{replacement}{marker}"
    return replacement


def render_fragment(transformation: TextTransformation, rng: random.Random | None = None) -> str:
    selector = transformation.selector
    pattern = transformation.fragment_pattern
    if not pattern:
        return selector
    style = transformation.fragment_style or "character"
    if style == "word":
        return f" {pattern} ".join(selector.split(" "))
    if style == "progressive":
        length = len(selector)
        return "".join(char + pattern * (index * 5 // length + 1) for index, char in enumerate(selector))
    if style == "random":
        chooser = rng or _seeded_rng(selector, pattern)
        return " ".join(word + pattern if chooser.random() < 0.5 else word for word in selector.split(" "))
    return pattern.join(selector)


def render_expand(transformation: TextTransformation) -> str:
    selector = transformation.selector
    replacement = transformation.replacement or ""
    style = transformation.expand_style or "append"
    if style == "inline":
        return f'{selector} <span class="narramorph-inline-expansion">[{replacement}]</span>'
    if style == "paragraph":
        return f'{selector}\n\n<div class="narramorph-paragraph-expansion">{replacement}</div>'
    if style == "reveal":
        return f'{selector} <span class="narramorph-reveal-expansion">{replacement}</span>'
    return f"{selector} {replacement}"


def render_emphasize(transformation: TextTransformation) -> str:
    selector = transformation.selector
    intensity = transformation.intensity or 1
    emphasis = transformation.emphasis
    if emphasis == "italic":
        if intensity > 1:
            return f'<em class="intensity-{intensity}">{selector}</em>'
        return f"*{selector}*"
    if emphasis == "bold":
        if intensity > 1:
            return f'<strong class="intensity-{intensity}">{selector}</strong>'
        return f"**{selector}**"
    if emphasis == "color":
        return f'<span class="emphasized-text intensity-{intensity}">{selector}</span>'
    if emphasis == "spacing":
        return (" " * intensity).join(selector)
    if emphasis == "highlight":
        return f'<mark class="intensity-{intensity}">{selector}</mark>'
    if emphasis == "glitch":
        return f'<span class="glitch-text intensity-{intensity}" data-text="{selector}">{selector}</span>'
    if emphasis == "fade":
        return f'<span class="fade-text intensity-{intensity}">{selector}</span>'
    return selector


def footnote_id(selector: str) -> str:
    return f"footnote-{generate_short_hash(selector)}"


def render_meta_comment(transformation: TextTransformation) -> str:
    selector = transformation.selector
    comment = transformation.replacement or ""
    style = transformation.comment_style or "inline"
    if style == "footnote":
        note_id = footnote_id(selector)
        return f'{selector}<sup class="narramorph-footnote-marker" id="{note_id}-ref">[†]</sup>'
    if style == "marginalia":
        return (
            f'<span class="narramorph-marginalia-container">{selector}'
            f'<span class="narramorph-marginalia">{comment}</span></span>'
        )
    if style == "interlinear":
        return (
            f'<div class="narramorph-interlinear-container">{selector}'
            f'<div class="narramorph-interlinear">{comment}</div></div>'
        )
    return f'{selector} <span class="narramorph-comment">[{comment}]</span>'


def add_footnote(content: str, note_id: str, comment: str) -> str:
    if f'id="{note_id}"' in content:
        return content
    note = f'<p id="{note_id}" class="narramorph-footnote">† <a href="#{note_id}-ref">↩</a> {comment}</p>'
    block_start = content.find(FOOTNOTE_BLOCK_OPEN)
    if block_start == -1:
        return f"{content}\n\n{FOOTNOTE_BLOCK_OPEN}\n{note}\n</div>"
    block_end = content.find("</div>", block_start)
    if block_end == -1:
        return f"{content}\n{note}"
    return f"{content[:block_end]}{note}\n{content[block_end:]}"


def render_transformation(transformation: TextTransformation, rng: random.Random | None = None) -> str | None:
    """Markup that replaces the selector, or None for a type this applier does not know."""
    kind = transformation.type
    if kind == "replace":
        return render_replace(transformation)
    if kind == "fragment":
        return render_fragment(transformation, rng)
    if kind == "expand":
        return render_expand(transformation)
    if kind == "emphasize":
        return render_emphasize(transformation)
    if kind == "metaComment":
        return render_meta_comment(transformation)
    return None


def covers_index(content: str, rendered: str, index: int) -> bool:
    """True when an occurrence of ``rendered`` in ``content`` spans ``index``."""
    if not rendered:
        return False
    start = content.find(rendered, max(0, index - len(rendered) + 1))
    while start != -1 and start <= index:
        if index < start + len(rendered):
            return True
        start = content.find(rendered, start + 1)
    return False


def sort_by_priority_hint(transformations: list[TextTransformation]) -> list[TextTransformation]:
    return sorted(transformations, key=priority_hint_value, reverse=True)


class TransformationApplier:
    """Applies text transformations to the first literal occurrence of their selector."""

    def __init__(
        self,
        *,
        cache_capacity: int = 200,
        batch_cache_capacity: int = 100,
        guard_max_chars: int = 10000,
        batch_guard_max_chars: int = 15000,
        batch_guard_max_transformations: int = 20,
        rng: random.Random | None = None,
        on_guard_trip: Callable[[str], None] | None = None,
        on_failure: Callable[[str], None] | None = None,
    ) -> None:
        self._cache = LRUCache(cache_capacity)
        self._batch_cache = LRUCache(batch_cache_capacity)
        self.guard_max_chars = int(guard_max_chars)
        self.batch_guard_max_chars = int(batch_guard_max_chars)
        self.batch_guard_max_transformations = int(batch_guard_max_transformations)
        self._rng = rng
        self._on_guard_trip = on_guard_trip
        self._on_failure = on_failure

    def _guard_trip(self, where: str, content: str) -> None:
        logger.warning("transformation guard tripped where=%s length=%s", where, len(content))
        if self._on_guard_trip is not None:
            self._on_guard_trip(where)

    def _failure(self, where: str) -> None:
        if self._on_failure is not None:
            self._on_failure(where)

    def apply(self, content: str, transformation: TextTransformation) -> str:
        if not content or not transformation.selector:
            return content
        if carries_transform_markers(content) and len(content) > self.guard_max_chars:
            self._guard_trip("apply", content)
            return content

        cache_key = (content, transformation_key(transformation))
        if self._rng is None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("transformation cache hit type=%s", transformation.type)
                return cached

        try:
            result = self._apply_uncached(content, transformation)
        except Exception:
            logger.exception("transformation failed type=%s selector=%r", transformation.type, transformation.selector)
            self._failure("apply")
            return content

        if self._rng is None:
            self._cache.put(cache_key, result)
        return result

    def _apply_uncached(self, content: str, transformation: TextTransformation) -> str:
        selector = transformation.selector
        index = content.find(selector)
        if index == -1:
            return content
        rendered = render_transformation(transformation, self._rng)
        if rendered is None or rendered == selector:
            return content
        if covers_index(content, rendered, index):
            return content

        result = f"{content[:index]}{rendered}{content[index + len(selector):]}"
        if transformation.type == "metaComment" and transformation.comment_style == "footnote":
            result = add_footnote(result, footnote_id(selector), transformation.replacement or "")
        return result

    def apply_all(
        self,
        content: str,
        transformations: list[TextTransformation],
        *,
        presorted: bool = False,
    ) -> str:
        """Apply a batch in priority-hint order, or in the given order when ``presorted``."""
        if not content:
            logger.warning("apply_all called with empty content")
            return ""
        if not transformations:
            return content
        if carries_transform_markers(content) and (
            len(content) > self.batch_guard_max_chars or len(transformations) > self.batch_guard_max_transformations
        ):
            self._guard_trip("apply_all", content)
            return content

        ordered = list(transformations) if presorted else sort_by_priority_hint(list(transformations))
        cache_key = (content, tuple(transformation_key(item) for item in ordered))
        if self._rng is None:
            cached = self._batch_cache.get(cache_key)
            if cached is not None:
                logger.debug("batch cache hit count=%s", len(ordered))
                return cached

        try:
            result = content
            for transformation in ordered:
                result = self.apply(result, transformation)
        except Exception:
            logger.exception("batch transformation failed count=%s", len(ordered))
            self._failure("apply_all")
            return content

        if self._rng is None:
            self._batch_cache.put(cache_key, result)
        return result

    def clear(self) -> None:
        self._cache.clear()
        self._batch_cache.clear()

    def stats(self) -> dict:
        return {
            "transformations": self._cache.stats(),
            "batches": self._batch_cache.stats(),
        }
