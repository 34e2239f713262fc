"""Runtime settings for the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Mapping


DEFAULT_MIN_CHAPTER_CHARS = 50
DEFAULT_FIRST_PAGES_CHARS = 5000
DEFAULT_FIRST_PAGES_CHAPTERS = 3
DEFAULT_FIRST_PAGES_PAGES = 5
DEFAULT_PDF_CHUNK_PAGES = 10
DEFAULT_PDF_SINGLE_CHAPTER_MAX_PAGES = 20
DEFAULT_PDF_MIN_IMAGE_PX = 10
DEFAULT_PDF_PARAGRAPH_GAP_RATIO = 1.5
DEFAULT_PDF_HEADING_RATIOS = (2.0, 1.6, 1.3, 1.15)
DEFAULT_PDF_BOLD_BOOST = 1.1
DEFAULT_PDF_HEADING_MAX_CHARS = 120
DEFAULT_PDF_SHAPE_HEADING_MAX_CHARS = 60
DEFAULT_MOBI_MIN_BODY_CHARS = 100
DEFAULT_TABLE_LOOKAHEAD = 30
DEFAULT_MAX_FILE_BYTES = 50 * 1024 * 1024

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.001) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(*, name: str, raw_value: str) -> bool:
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be one of: {', '.join(sorted(_TRUE_VALUES | _FALSE_VALUES))}")


@dataclass(frozen=True, slots=True)
class HeadingThresholds:
    """Font-size ratio cut-offs for PDF heading levels 1-4.

    The ratio is a run's font size over the page's character-weighted
    average size; bold runs are multiplied by ``bold_boost`` first.
    Isolated single-line paragraphs shorter than ``shape_max_chars`` that are
    upper-case or Title Case are promoted to level-3 headings; 0 disables it.
    """

    h1: float = DEFAULT_PDF_HEADING_RATIOS[0]
    h2: float = DEFAULT_PDF_HEADING_RATIOS[1]
    h3: float = DEFAULT_PDF_HEADING_RATIOS[2]
    h4: float = DEFAULT_PDF_HEADING_RATIOS[3]
    bold_boost: float = DEFAULT_PDF_BOLD_BOOST
    max_chars: int = DEFAULT_PDF_HEADING_MAX_CHARS
    shape_max_chars: int = DEFAULT_PDF_SHAPE_HEADING_MAX_CHARS

    def __post_init__(self) -> None:
        if not self.h1 >= self.h2 >= self.h3 >= self.h4 > 0:
            raise ValueError("Heading ratios must be positive and non-increasing (h1 >= h2 >= h3 >= h4)")

    def level_for(self, ratio: float) -> int | None:
        for level, cutoff in enumerate((self.h1, self.h2, self.h3, self.h4), start=1):
            if ratio >= cutoff:
                return level
        return None


@dataclass(frozen=True, slots=True)
class ExtractionSettings:
    """Validated tunables for one or many extraction calls."""

    min_chapter_chars: int = DEFAULT_MIN_CHAPTER_CHARS
    first_pages_chars: int = DEFAULT_FIRST_PAGES_CHARS
    first_pages_chapters: int = DEFAULT_FIRST_PAGES_CHAPTERS
    first_pages_pages: int = DEFAULT_FIRST_PAGES_PAGES
    pdf_chunk_pages: int = DEFAULT_PDF_CHUNK_PAGES
    pdf_single_chapter_max_pages: int = DEFAULT_PDF_SINGLE_CHAPTER_MAX_PAGES
    pdf_min_image_px: int = DEFAULT_PDF_MIN_IMAGE_PX
    pdf_paragraph_gap_ratio: float = DEFAULT_PDF_PARAGRAPH_GAP_RATIO
    heading_thresholds: HeadingThresholds = field(default_factory=HeadingThresholds)
    render_pdf_cover: bool = True
    mobi_min_body_chars: int = DEFAULT_MOBI_MIN_BODY_CHARS
    table_lookahead: int = DEFAULT_TABLE_LOOKAHEAD
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    detect_language: bool = True
    enrich_from_text: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExtractionSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        def raw(name: str, default: object) -> str:
            value = source.get(name, str(default)).strip()
            if not value:
                raise ValueError(f"{name} cannot be empty")
            return value

        def positive_int(name: str, default: int, minimum: int = 1) -> int:
            return _parse_positive_int(name=name, raw_value=raw(name, default), minimum=minimum)

        ratios_name = "SHELFPARSE_PDF_HEADING_RATIOS"
        ratios_raw = raw(ratios_name, ",".join(str(value) for value in DEFAULT_PDF_HEADING_RATIOS))
        ratio_parts = [part.strip() for part in ratios_raw.split(",")]
        if len(ratio_parts) != 4:
            raise ValueError(f"{ratios_name} must list exactly four comma-separated ratios")
        ratios = [_parse_positive_float(name=ratios_name, raw_value=part) for part in ratio_parts]

        thresholds = HeadingThresholds(
            h1=ratios[0],
            h2=ratios[1],
            h3=ratios[2],
            h4=ratios[3],
            bold_boost=_parse_positive_float(
                name="SHELFPARSE_PDF_BOLD_BOOST",
                raw_value=raw("SHELFPARSE_PDF_BOLD_BOOST", DEFAULT_PDF_BOLD_BOOST),
                minimum=1.0,
            ),
            max_chars=positive_int("SHELFPARSE_PDF_HEADING_MAX_CHARS", DEFAULT_PDF_HEADING_MAX_CHARS),
            shape_max_chars=positive_int(
                "SHELFPARSE_PDF_SHAPE_HEADING_MAX_CHARS", DEFAULT_PDF_SHAPE_HEADING_MAX_CHARS, minimum=0
            ),
        )

        return cls(
            min_chapter_chars=positive_int("SHELFPARSE_MIN_CHAPTER_CHARS", DEFAULT_MIN_CHAPTER_CHARS, minimum=0),
            first_pages_chars=positive_int("SHELFPARSE_FIRST_PAGES_CHARS", DEFAULT_FIRST_PAGES_CHARS),
            first_pages_chapters=positive_int("SHELFPARSE_FIRST_PAGES_CHAPTERS", DEFAULT_FIRST_PAGES_CHAPTERS),
            first_pages_pages=positive_int("SHELFPARSE_FIRST_PAGES_PAGES", DEFAULT_FIRST_PAGES_PAGES),
            pdf_chunk_pages=positive_int("SHELFPARSE_PDF_CHUNK_PAGES", DEFAULT_PDF_CHUNK_PAGES),
            pdf_single_chapter_max_pages=positive_int(
                "SHELFPARSE_PDF_SINGLE_CHAPTER_MAX_PAGES", DEFAULT_PDF_SINGLE_CHAPTER_MAX_PAGES
            ),
            pdf_min_image_px=positive_int("SHELFPARSE_PDF_MIN_IMAGE_PX", DEFAULT_PDF_MIN_IMAGE_PX, minimum=0),
            pdf_paragraph_gap_ratio=_parse_positive_float(
                name="SHELFPARSE_PDF_PARAGRAPH_GAP_RATIO",
                raw_value=raw("SHELFPARSE_PDF_PARAGRAPH_GAP_RATIO", DEFAULT_PDF_PARAGRAPH_GAP_RATIO),
            ),
            heading_thresholds=thresholds,
            render_pdf_cover=_parse_bool(
                name="SHELFPARSE_PDF_RENDER_COVER", raw_value=raw("SHELFPARSE_PDF_RENDER_COVER", "true")
            ),
            mobi_min_body_chars=positive_int("SHELFPARSE_MOBI_MIN_BODY_CHARS", DEFAULT_MOBI_MIN_BODY_CHARS),
            table_lookahead=positive_int("SHELFPARSE_TABLE_LOOKAHEAD", DEFAULT_TABLE_LOOKAHEAD),
            max_file_bytes=positive_int("SHELFPARSE_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES, minimum=0),
            detect_language=_parse_bool(
                name="SHELFPARSE_DETECT_LANGUAGE", raw_value=raw("SHELFPARSE_DETECT_LANGUAGE", "true")
            ),
            enrich_from_text=_parse_bool(
                name="SHELFPARSE_ENRICH_FROM_TEXT", raw_value=raw("SHELFPARSE_ENRICH_FROM_TEXT", "true")
            ),
        )
