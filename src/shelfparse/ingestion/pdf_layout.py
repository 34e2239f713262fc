"""Layout inference for PDF text: run classification, paragraphs, chapters.

Everything here is pure: it works on ``TextRun`` values so the heuristics
can be tested without rendering a PDF.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Sequence, Union

from shelfparse.ingestion.config import HeadingThresholds
from shelfparse.ingestion.models import ChapterDraft
from shelfparse.ingestion.normalization import normalize_whitespace

_ORDERED_ITEM_RE = re.compile(r"^(\d{1,3}|[A-Za-z]|[ivxlcdmIVXLCDM]{1,6})([.)])\s+(\S.*)$")
_ASCII_BULLET_RE = re.compile(r"^([-*–—])\s+(\S.*)$")
_GLYPH_BULLET_RE = re.compile(r"^([•◦▪▫●○■□‣⁃∙·►▸➢➤])\s*(\S.*)$")
_TITLE_CASE_RE = re.compile(r"^[A-Z][a-z]+(\s+[A-Z][a-z]+)*$")
_HYPHEN_END_RE = re.compile(r"[A-Za-z]-$")
_CHAPTER_KEYWORD_RE = re.compile(
    r"^\s*(chapter|part|section|prologue|epilogue|appendix|book)\b",
    re.IGNORECASE,
)
_HAS_LETTER_RE = re.compile(r"[^\W\d_]")


@dataclass(frozen=True, slots=True)
class TextRun:
    """One positioned line of text with its dominant font metrics."""

    text: str
    x: float
    y: float
    width: float
    height: float
    font_size: float
    font_name: str = ""
    bold: bool = False
    italic: bool = False


@dataclass(frozen=True, slots=True)
class Heading:
    level: int


@dataclass(frozen=True, slots=True)
class ListItem:
    ordered: bool
    marker: str
    text: str


@dataclass(frozen=True, slots=True)
class Paragraph:
    pass


RunKind = Union[Heading, ListItem, Paragraph]


@dataclass(frozen=True, slots=True)
class PageBlock:
    kind: str
    text: str
    level: int = 0

    def render(self) -> str:
        if self.kind == "heading":
            return f"{'#' * self.level} {self.text}"
        return self.text


@dataclass(slots=True)
class PageLayout:
    number: int
    blocks: list[PageBlock] = field(default_factory=list)
    has_text: bool = False

    def markdown(self, *, include_images: bool = True) -> str:
        return render_blocks(
            [block for block in self.blocks if include_images or block.kind != "image"]
        )


def page_average_font_size(runs: Sequence[TextRun]) -> float:
    """Character-weighted mean font size of a page."""

    total_chars = 0
    weighted = 0.0
    for run in runs:
        chars = len(run.text.strip())
        if chars == 0 or run.font_size <= 0:
            continue
        total_chars += chars
        weighted += run.font_size * chars
    return weighted / total_chars if total_chars else 0.0


def classify_heading(run: TextRun, page_average: float, thresholds: HeadingThresholds) -> Heading | None:
    text = normalize_whitespace(run.text)
    if not text or len(text) > thresholds.max_chars or page_average <= 0:
        return None
    if text.endswith((".", ",")) or not _HAS_LETTER_RE.search(text):
        return None
    ratio = run.font_size / page_average
    if run.bold:
        ratio *= thresholds.bold_boost
    level = thresholds.level_for(ratio)
    return Heading(level) if level is not None else None


def classify_list_item(text: str) -> ListItem | None:
    text = normalize_whitespace(text)
    match = _GLYPH_BULLET_RE.match(text) or _ASCII_BULLET_RE.match(text)
    if match is not None:
        return ListItem(ordered=False, marker="-", text=match.group(2))
    match = _ORDERED_ITEM_RE.match(text)
    if match is not None:
        return ListItem(ordered=True, marker=f"{match.group(1)}{match.group(2)}", text=match.group(3))
    return None


def classify_run(run: TextRun, page_average: float, thresholds: HeadingThresholds) -> RunKind:
    """Heading, list item or body text, in that order of precedence."""

    heading = classify_heading(run, page_average, thresholds)
    if heading is not None:
        return heading
    item = classify_list_item(run.text)
    if item is not None:
        return item
    return Paragraph()


def looks_like_heading_text(text: str, max_chars: int) -> bool:
    """Short upper-case or Title Case line without trailing punctuation."""

    trimmed = text.strip()
    if not trimmed or max_chars <= 0 or len(trimmed) >= max_chars:
        return False
    if trimmed.endswith((".", ",")) or not _HAS_LETTER_RE.search(trimmed):
        return False
    return trimmed == trimmed.upper() or _TITLE_CASE_RE.match(trimmed) is not None


def join_lines(lines: Sequence[str]) -> str:
    """Join wrapped lines with single spaces, repairing ``exam-`` / ``ple`` splits."""

    joined = ""
    for line in lines:
        if not joined:
            joined = line
        elif _HYPHEN_END_RE.search(joined) and line[:1].islower():
            joined = joined[:-1] + line
        else:
            joined = f"{joined} {line}"
    return joined


def layout_page(
    runs: Sequence[TextRun],
    thresholds: HeadingThresholds,
    gap_ratio: float,
    *,
    number: int = 1,
) -> PageLayout:
    """Turn a page's runs into heading, list and paragraph blocks."""

    page = PageLayout(number=number)
    average = page_average_font_size(runs)
    paragraph: list[str] = []
    previous: TextRun | None = None
    previous_kind: RunKind | None = None

    def flush() -> None:
        if not paragraph:
            return
        text = join_lines(paragraph)
        if len(paragraph) == 1 and looks_like_heading_text(text, thresholds.shape_max_chars):
            page.blocks.append(PageBlock("heading", text, 3))
        else:
            page.blocks.append(PageBlock("paragraph", text))
        paragraph.clear()

    for run in runs:
        text = normalize_whitespace(run.text)
        if not text:
            continue
        page.has_text = True
        kind = classify_run(run, average, thresholds)
        separated = previous is None or abs(run.y - previous.y) > gap_ratio * max(previous.height, 0.1)

        if isinstance(kind, Heading):
            flush()
            last = page.blocks[-1] if page.blocks else None
            continues_heading = (
                isinstance(previous_kind, Heading)
                and last is not None
                and last.kind == "heading"
                and last.level == kind.level
                and not separated
            )
            if continues_heading:
                page.blocks[-1] = PageBlock("heading", f"{last.text} {text}", kind.level)
            else:
                page.blocks.append(PageBlock("heading", text, kind.level))
        elif isinstance(kind, ListItem):
            flush()
            page.blocks.append(PageBlock("list", f"{kind.marker} {kind.text}"))
        else:
            if paragraph and separated:
                flush()
            paragraph.append(text)

        previous = run
        previous_kind = kind

    flush()
    return page


def render_blocks(blocks: Sequence[PageBlock]) -> str:
    """Markdown for a block sequence; consecutive list items stay on adjacent lines."""

    parts: list[str] = []
    previous_kind = ""
    for block in blocks:
        rendered = block.render()
        if not rendered:
            continue
        if parts:
            parts.append("\n" if block.kind == "list" and previous_kind == "list" else "\n\n")
        parts.append(rendered)
        previous_kind = block.kind
    return "".join(parts)


def is_chapter_boundary(block: PageBlock) -> bool:
    if block.kind != "heading":
        return False
    if block.level == 1:
        return True
    return block.level == 2 and _CHAPTER_KEYWORD_RE.match(block.text) is not None


def detect_chapters(pages: Sequence[PageLayout], *, implicit_title: str = "Front Matter") -> tuple[list[ChapterDraft], int]:
    """Split the page sequence at boundary headings.

    Returns the non-empty drafts and the number of boundaries found.
    Boundary heading text becomes the chapter title, not part of its body.
    """

    drafts: list[ChapterDraft] = []
    title = implicit_title
    level = 1
    blocks: list[PageBlock] = []
    boundaries = 0

    def close() -> None:
        content = render_blocks(blocks).strip()
        if content:
            drafts.append(ChapterDraft(content=content, title=title, level=level))

    for page in pages:
        for block in page.blocks:
            if is_chapter_boundary(block):
                close()
                boundaries += 1
                title = block.text
                level = block.level
                blocks = []
                continue
            blocks.append(block)
    close()
    return drafts, boundaries


def chunk_pages(pages: Sequence[PageLayout], chunk_size: int) -> list[ChapterDraft]:
    """Fixed-size page groups titled ``Pages a-b`` (``Content`` for a single chunk)."""

    total = len(pages)
    drafts: list[ChapterDraft] = []
    for start in range(0, total, chunk_size):
        group = pages[start : start + chunk_size]
        content = "\n\n".join(text for text in (page.markdown() for page in group) if text).strip()
        if total <= chunk_size:
            title = "Content"
        else:
            title = f"Pages {start + 1}-{start + len(group)}"
        drafts.append(ChapterDraft(content=content, title=title, level=1))
    return drafts
