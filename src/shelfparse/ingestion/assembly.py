"""Final assembly of a ParsedDocument from per-format chapter drafts."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import NoReadableContentError
from shelfparse.ingestion.language_detection import detect_language
from shelfparse.ingestion.metadata import enrich_from_text
from shelfparse.ingestion.models import Chapter, ChapterDraft, DocumentMetadata, ParsedDocument
from shelfparse.ingestion.normalization import truncate

logger = logging.getLogger(__name__)

_HEADING_LINE_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_LANGUAGE_SAMPLE_CHARS = 3000


def first_heading(content: str) -> tuple[str, int] | None:
    """Text and depth of the first ATX heading line in ``content``."""

    match = _HEADING_LINE_RE.search(content)
    if match is None:
        return None
    title = match.group(2).strip()
    if not title:
        return None
    return title, len(match.group(1))


def finalize_chapters(drafts: Iterable[ChapterDraft]) -> tuple[Chapter, ...]:
    """Drop empty drafts and assign titles, levels and contiguous order."""

    chapters: list[Chapter] = []
    for draft in drafts:
        content = draft.content.strip()
        if not content:
            continue
        position = len(chapters)
        heading = first_heading(content)
        title = draft.title or (heading[0] if heading else f"Chapter {position + 1}")
        level = draft.level or (heading[1] if heading else 1)
        chapters.append(Chapter(title=title, content=content, level=max(1, min(6, level)), order=position))
    return tuple(chapters)


def join_markdown(chapters: Iterable[Chapter]) -> str:
    """Whole-book markdown: each chapter under a heading, separated by rules."""

    sections = [f"# {chapter.title}\n\n{chapter.content}\n\n---" for chapter in chapters]
    return "\n\n".join(sections).strip()


def first_pages_from_chapters(chapters: tuple[Chapter, ...], settings: ExtractionSettings) -> str | None:
    leading = chapters[: settings.first_pages_chapters]
    text = truncate("\n\n".join(chapter.content for chapter in leading), settings.first_pages_chars)
    return text or None


def assemble_document(
    *,
    source: str,
    format_name: str,
    title: str,
    author: str | None,
    cover_image: str | None,
    drafts: Iterable[ChapterDraft],
    metadata: DocumentMetadata,
    settings: ExtractionSettings,
    first_pages_text: str | None = None,
) -> ParsedDocument:
    """Build the immutable result, or fail when no chapter has content."""

    chapters = finalize_chapters(drafts)
    if not chapters:
        raise NoReadableContentError(f"No readable content found in {format_name.upper()} file", source)

    if first_pages_text is None:
        first_pages_text = first_pages_from_chapters(chapters, settings)

    if metadata.language is None and settings.detect_language:
        sample = "\n".join(chapter.content for chapter in chapters[:3])
        metadata.language = detect_language(sample, sample_chars=_LANGUAGE_SAMPLE_CHARS)
    if settings.enrich_from_text:
        enrich_from_text(metadata, first_pages_text)

    logger.info("Extracted %d chapters from %s (%s)", len(chapters), source, format_name)
    return ParsedDocument(
        title=title,
        author=author,
        cover_image=cover_image,
        markdown=join_markdown(chapters),
        chapters=chapters,
        metadata=metadata,
        first_pages_text=first_pages_text,
        format_name=format_name,
    )
