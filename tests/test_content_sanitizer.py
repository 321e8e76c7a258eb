from narramorph.modules.bleed.service import STRIKETHROUGH
from narramorph.modules.transform.sanitizer import (
    final_text_cleanup,
    generate_transformation_id,
    is_content_corrupted,
    strip_transformation_markup,
)
from narramorph.modules.transform.schemas import TextTransformation


def test_strip_removes_transformation_spans_and_markers() -> None:
    content = (
        '<span class="glitch-text intensity-4" data-text="echo">echo</span> drifts '
        "[PATTERN_DETECTED: recursive_loop_identified] through s" + STRIKETHROUGH + "ilence"
    )
    assert strip_transformation_markup(content) == "echo drifts through silence"


def test_strip_removes_perspective_shift_notes() -> None:
    content = "Dust settles. perspective shift: Algorithm → Archaeologist\n\nThe vault opens."
    assert strip_transformation_markup(content) == "Dust settles. The vault opens."


def test_strip_empty_content() -> None:
    assert strip_transformation_markup("") == ""


def test_corruption_checks() -> None:
    assert is_content_corrupted("")
    assert is_content_corrupted("tiny")
    assert is_content_corrupted("the value was undefined today")
    assert is_content_corrupted("<span>x</span>" * 10)
    assert not is_content_corrupted("A clean paragraph of narrative text.")


def test_final_cleanup_keeps_paragraph_breaks() -> None:
    text = "First paragraph [TEMPORAL_MARKER:2157.03.14] text .\n\n\n\nSecond   line [DATA_INTEGRITY: low]"
    assert final_text_cleanup(text) == "First paragraph text.\n\nSecond line"


def test_final_cleanup_removes_resonance_notes() -> None:
    text = "The memory fragment glows. strange attractor resonance: 80/100"
    assert final_text_cleanup(text) == "The memory fragment glows."


def test_transformation_id() -> None:
    emphasis = TextTransformation(type="emphasize", selector="a very long selector string here")
    comment = TextTransformation(type="metaComment", selector="dust", priority="high")
    assert generate_transformation_id(emphasis) == "emphasize-a very long selector-medium"
    assert generate_transformation_id(comment) == "metaComment-dust-high"
