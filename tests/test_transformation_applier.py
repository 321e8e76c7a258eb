import random

from narramorph.modules.transform.applier import (
    FOOTNOTE_BLOCK_OPEN,
    TransformationApplier,
    covers_index,
    generate_short_hash,
    render_emphasize,
    render_expand,
    render_fragment,
    render_replace,
    sort_by_priority_hint,
)
from narramorph.modules.transform.schemas import TextTransformation

TEXT = "The light falls on the light of the archive."


def test_empty_transformation_list_returns_content_unchanged() -> None:
    applier = TransformationApplier()
    assert applier.apply_all(TEXT, []) == TEXT
    assert applier.apply_all("", [TextTransformation(type="replace", selector="x", replacement="y")]) == ""


def test_replace_targets_first_occurrence_only() -> None:
    result = TransformationApplier().apply(TEXT, TextTransformation(type="replace", selector="light", replacement="glow"))
    assert result == "The glow falls on the light of the archive."


def test_missing_selector_and_unknown_type_are_no_ops() -> None:
    applier = TransformationApplier()
    assert applier.apply(TEXT, TextTransformation(type="replace", selector="absent", replacement="x")) == TEXT
    assert applier.apply(TEXT, TextTransformation(type="shimmer", selector="light")) == TEXT


def test_emphasis_is_idempotent() -> None:
    applier = TransformationApplier()
    bold = TextTransformation(type="emphasize", selector="archive", emphasis="bold")

    once = applier.apply(TEXT, bold)
    twice = applier.apply(once, bold)

    assert once == "The light falls on the light of the **archive**."
    assert twice == once


def test_footnote_is_added_once() -> None:
    applier = TransformationApplier()
    note = TextTransformation(type="metaComment", selector="archive", replacement="catalogued", comment_style="footnote")

    once = applier.apply(TEXT, note)
    twice = applier.apply(once, note)

    assert twice == once
    assert once.count(FOOTNOTE_BLOCK_OPEN) == 1
    assert once.count("catalogued") == 1
    assert '<sup class="narramorph-footnote-marker"' in once


def test_second_footnote_joins_existing_block() -> None:
    applier = TransformationApplier()
    first = TextTransformation(type="metaComment", selector="archive", replacement="one", comment_style="footnote")
    second = TextTransformation(type="metaComment", selector="falls", replacement="two", comment_style="footnote")

    result = applier.apply(applier.apply(TEXT, first), second)

    assert result.count(FOOTNOTE_BLOCK_OPEN) == 1
    assert result.index("one") < result.index("two") < result.rindex("</div>")


def test_guard_skips_large_marked_content() -> None:
    trips = []
    applier = TransformationApplier(guard_max_chars=50, on_guard_trip=trips.append)
    content = '<span class="narramorph-comment">x</span> ' + "word " * 20

    assert applier.apply(content, TextTransformation(type="replace", selector="word", replacement="w")) == content
    assert trips == ["apply"]


def test_batch_guard_counts_transformations() -> None:
    trips = []
    applier = TransformationApplier(batch_guard_max_transformations=2, on_guard_trip=trips.append)
    content = '<span data-transform-type="emphasize">x</span> light'
    batch = [TextTransformation(type="emphasize", selector="light", emphasis="italic")] * 3

    assert applier.apply_all(content, batch) == content
    assert trips == ["apply_all"]


def test_apply_all_orders_by_priority_hint() -> None:
    applier = TransformationApplier()
    low = TextTransformation(type="replace", selector="light falls", replacement="shadow rises", priority="low")
    high = TextTransformation(type="replace", selector="light", replacement="dark", priority="high")

    assert [item.priority for item in sort_by_priority_hint([low, high])] == ["high", "low"]
    assert applier.apply_all(TEXT, [low, high]) == "The dark falls on the light of the archive."
    assert applier.apply_all(TEXT, [low, high], presorted=True) == "The shadow rises on the dark of the archive."


def test_fragment_styles() -> None:
    def fragment(style: str) -> TextTransformation:
        return TextTransformation(type="fragment", selector="ab cd", fragment_pattern="-", fragment_style=style)

    assert render_fragment(fragment("character")) == "a-b- -c-d"
    assert render_fragment(fragment("word")) == "ab - cd"
    assert render_fragment(TextTransformation(type="fragment", selector="ab", fragment_pattern="-", fragment_style="progressive")) == "a-b---"
    assert render_fragment(fragment("random")) == render_fragment(fragment("random"))
    assert render_fragment(TextTransformation(type="fragment", selector="ab")) == "ab"


def test_random_fragment_uses_injected_rng() -> None:
    applier = TransformationApplier(rng=random.Random(1))
    transformation = TextTransformation(type="fragment", selector="one two three", fragment_pattern="~", fragment_style="random")
    result = applier.apply("one two three", transformation)
    assert result.replace("~", "") == "one two three"


def test_emphasis_and_expansion_markup() -> None:
    assert render_emphasize(TextTransformation(type="emphasize", selector="x", emphasis="italic")) == "*x*"
    assert render_emphasize(TextTransformation(type="emphasize", selector="x", emphasis="italic", intensity=3)) == '<em class="intensity-3">x</em>'
    assert render_emphasize(TextTransformation(type="emphasize", selector="ab", emphasis="spacing", intensity=2)) == "a  b"
    assert render_emphasize(TextTransformation(type="emphasize", selector="x", emphasis="glitch", intensity=4)) == (
        '<span class="glitch-text intensity-4" data-text="x">x</span>'
    )
    assert render_expand(TextTransformation(type="expand", selector="x", replacement="more")) == "x more"
    assert render_expand(TextTransformation(type="expand", selector="x", replacement="more", expand_style="inline")) == (
        'x <span class="narramorph-inline-expansion">[more]</span>'
    )


def test_replace_preserves_markdown_markers() -> None:
    transformation = TextTransformation(type="replace", selector="**old**", replacement="new", preserve_formatting=True)
    assert render_replace(transformation) == "**new**"


def test_intensity_is_clamped() -> None:
    assert TextTransformation(type="emphasize", selector="x", intensity=9).intensity == 5
    assert TextTransformation(type="emphasize", selector="x", intensity=0).intensity == 1


def test_applier_cache_reports_hits() -> None:
    applier = TransformationApplier()
    bold = TextTransformation(type="emphasize", selector="archive", emphasis="bold")
    applier.apply(TEXT, bold)
    applier.apply(TEXT, bold)
    assert applier.stats()["transformations"]["hits"] == 1
    applier.clear()
    assert applier.stats()["transformations"]["size"] == 0


def test_helpers() -> None:
    assert covers_index("a **b** c", "**b**", 4)
    assert not covers_index("a b c", "**b**", 2)
    assert generate_short_hash("archive") == generate_short_hash("archive")
    assert len(generate_short_hash("archive")) <= 6
