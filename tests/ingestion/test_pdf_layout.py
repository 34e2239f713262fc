from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from shelfparse.ingestion.config import HeadingThresholds
from shelfparse.ingestion.pdf_layout import (
    Heading,
    ListItem,
    PageBlock,
    PageLayout,
    Paragraph,
    TextRun,
    chunk_pages,
    classify_run,
    detect_chapters,
    join_lines,
    layout_page,
    page_average_font_size,
    render_blocks,
)

_THRESHOLDS = HeadingThresholds()
_GAP = 1.5


def _run(text: str, y: float, size: float = 11.0, *, bold: bool = False) -> TextRun:
    return TextRun(text=text, x=72.0, y=y, width=300.0, height=size * 1.2, font_size=size, bold=bold)


def test_average_font_size_is_character_weighted() -> None:
    runs = [_run("ab", 0, 30.0), _run("abcdefgh", 20, 10.0), _run("   ", 40, 99.0)]

    assert page_average_font_size(runs) == 14.0
    assert page_average_font_size([]) == 0.0


def test_heading_levels_by_ratio_and_bold_boost() -> None:
    assert classify_run(_run("Title", 0, 24.0), 11.0, _THRESHOLDS) == Heading(1)
    assert classify_run(_run("Part", 0, 18.0), 11.0, _THRESHOLDS) == Heading(2)
    assert classify_run(_run("Section", 0, 15.0), 11.0, _THRESHOLDS) == Heading(3)
    assert classify_run(_run("Minor", 0, 13.0), 11.0, _THRESHOLDS) == Heading(4)
    assert classify_run(_run("Bold lead", 0, 12.0, bold=True), 11.0, _THRESHOLDS) == Heading(4)
    assert classify_run(_run("Bold lead", 0, 12.0), 11.0, _THRESHOLDS) == Paragraph()


def test_large_sentences_numbers_and_long_lines_are_not_headings() -> None:
    assert classify_run(_run("A large sentence.", 0, 24.0), 11.0, _THRESHOLDS) == Paragraph()
    assert classify_run(_run("2024", 0, 24.0), 11.0, _THRESHOLDS) == Paragraph()
    assert classify_run(_run("word " * 40, 0, 24.0), 11.0, _THRESHOLDS) == Paragraph()


def test_list_items_ordered_and_bulleted() -> None:
    assert classify_run(_run("1. First step", 0), 11.0, _THRESHOLDS) == ListItem(True, "1.", "First step")
    assert classify_run(_run("iv) Fourth", 0), 11.0, _THRESHOLDS) == ListItem(True, "iv)", "Fourth")
    assert classify_run(_run("b. Second", 0), 11.0, _THRESHOLDS) == ListItem(True, "b.", "Second")
    assert classify_run(_run("•Glyph bullet", 0), 11.0, _THRESHOLDS) == ListItem(False, "-", "Glyph bullet")
    assert classify_run(_run("- dash bullet", 0), 11.0, _THRESHOLDS) == ListItem(False, "-", "dash bullet")
    assert classify_run(_run("-5 degrees outside", 0), 11.0, _THRESHOLDS) == Paragraph()


@given(st.floats(min_value=0.1, max_value=10.0), st.floats(min_value=1.0, max_value=100.0))
def test_ratio_cutoffs_are_monotonic(ratio: float, average: float) -> None:
    smaller = classify_run(_run("Heading", 0, average * ratio), average, _THRESHOLDS)
    larger = classify_run(_run("Heading", 0, average * ratio * 1.5), average, _THRESHOLDS)

    if isinstance(smaller, Heading):
        assert isinstance(larger, Heading)
        assert larger.level <= smaller.level


def test_layout_builds_headings_paragraphs_and_lists() -> None:
    runs = [
        _run("Chapter One", 100, 28.0),
        _run("This is the first line of a para-", 150),
        _run("graph that continues here.", 163.2),
        _run("Second paragraph starts here and goes on.", 200),
        _run("• item one", 230),
        _run("• item two", 243.2),
    ]

    page = layout_page(runs, _THRESHOLDS, _GAP)

    assert page.has_text
    assert page.markdown() == (
        "# Chapter One\n\n"
        "This is the first line of a paragraph that continues here.\n\n"
        "Second paragraph starts here and goes on.\n\n"
        "- item one\n"
        "- item two"
    )


def test_consecutive_heading_lines_merge() -> None:
    runs = [
        _run("The Long", 100, 28.0),
        _run("Title", 130, 28.0),
        _run("Body text that is long enough to pull the average font size down a lot.", 200),
        _run("More body text on another line of the same paragraph for the average.", 213.2),
    ]

    page = layout_page(runs, _THRESHOLDS, _GAP)

    assert page.blocks[0] == PageBlock("heading", "The Long Title", 1)


def test_isolated_short_title_case_line_becomes_subheading() -> None:
    runs = [
        _run("an opening paragraph line that is plain prose", 100),
        _run("Quiet Interlude", 140),
        _run("and the story continues afterwards in prose", 180),
    ]

    page = layout_page(runs, _THRESHOLDS, _GAP)
    disabled = layout_page(runs, HeadingThresholds(shape_max_chars=0), _GAP)

    assert PageBlock("heading", "Quiet Interlude", 3) in page.blocks
    assert PageBlock("paragraph", "Quiet Interlude") in disabled.blocks


def test_join_lines_repairs_hyphenation_only_before_lowercase() -> None:
    assert join_lines(["exam-", "ple text"]) == "example text"
    assert join_lines(["Jean-", "Paul"]) == "Jean- Paul"
    assert join_lines(["one", "two"]) == "one two"


def _page(number: int, *blocks: PageBlock) -> PageLayout:
    return PageLayout(number=number, blocks=list(blocks), has_text=bool(blocks))


def test_chapters_split_on_h1_and_keyword_h2() -> None:
    pages = [
        _page(1, PageBlock("paragraph", "Preface text"), PageBlock("heading", "Introduction", 1), PageBlock("paragraph", "intro")),
        _page(
            2,
            PageBlock("paragraph", "page two"),
            PageBlock("heading", "Chapter 2: Methods", 2),
            PageBlock("paragraph", "methods"),
            PageBlock("heading", "Not a boundary", 2),
            PageBlock("paragraph", "more"),
        ),
    ]

    drafts, boundaries = detect_chapters(pages)

    assert boundaries == 2
    assert [(draft.title, draft.level, draft.content) for draft in drafts] == [
        ("Front Matter", 1, "Preface text"),
        ("Introduction", 1, "intro\n\npage two"),
        ("Chapter 2: Methods", 2, "methods\n\n## Not a boundary\n\nmore"),
    ]


def test_chunks_are_titled_by_page_range() -> None:
    pages = [_page(number, PageBlock("paragraph", f"Text of page {number}")) for number in range(1, 26)]

    drafts = chunk_pages(pages, 10)

    assert [draft.title for draft in drafts] == ["Pages 1-10", "Pages 11-20", "Pages 21-25"]
    assert drafts[2].content.startswith("Text of page 21\n\nText of page 22")
    assert [draft.title for draft in chunk_pages(pages[:4], 10)] == ["Content"]


def test_render_blocks_skips_empty_text() -> None:
    blocks = [PageBlock("paragraph", ""), PageBlock("list", "- a"), PageBlock("paragraph", "after")]

    assert render_blocks(blocks) == "- a\n\nafter"
