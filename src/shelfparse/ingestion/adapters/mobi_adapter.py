"""MOBI extractor: decoded HTML split into chapters by TOC or headings."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from bs4 import BeautifulSoup, Tag

from shelfparse.ingestion.adapters.mobi_decoder import DecodedMobi, MobiDecoder, MobiLibraryDecoder
from shelfparse.ingestion.archive import build_archive_index
from shelfparse.ingestion.assembly import assemble_document, first_heading
from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import NoReadableContentError
from shelfparse.ingestion.html_markdown import body_to_markdown
from shelfparse.ingestion.images import ImageInliner
from shelfparse.ingestion.metadata import RawMetadata, build_metadata
from shelfparse.ingestion.mime import detect_signature, sniff_image_mime, to_data_uri
from shelfparse.ingestion.models import ChapterDraft, ParsedDocument
from shelfparse.ingestion.normalization import first_non_empty, normalize_text, title_from_filename
from shelfparse.ingestion.packaging import TocEntry
from shelfparse.ingestion.tables import reconstruct_tables

logger = logging.getLogger(__name__)

_MOBI_SUFFIXES = (".mobi", ".azw", ".azw3", ".prc")
_PDB_TYPES = (b"BOOKMOBI", b"TEXtREAd")
_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_MARKER_PREFIX = "SHELFPARSECHAPTERBREAK"
_MARKER_RE = re.compile(rf"{_MARKER_PREFIX}(\d+)X")


@dataclass(frozen=True, slots=True)
class _Boundary:
    element: Tag
    title: str | None
    level: int


def _heading_level(tag: Tag) -> int:
    return int(tag.name[1]) if tag.name in _HEADING_TAGS else 1


def _titles_match(heading: str, entry: str) -> bool:
    heading_key = normalize_text(heading)
    entry_key = normalize_text(entry)
    if not heading_key or not entry_key:
        return False
    return heading_key.startswith(entry_key) or entry_key.startswith(heading_key)


def align_toc(body: Tag, toc: list[TocEntry]) -> list[_Boundary]:
    """Match TOC entries, in order, to heading elements that follow each other."""

    headings = body.find_all(list(_HEADING_TAGS))
    boundaries: list[_Boundary] = []
    cursor = 0
    for entry in toc:
        for position in range(cursor, len(headings)):
            heading = headings[position]
            if _titles_match(heading.get_text(" ", strip=True), entry.title):
                boundaries.append(_Boundary(heading, entry.title, entry.level))
                cursor = position + 1
                break
    return boundaries


def heading_boundaries(body: Tag) -> list[_Boundary]:
    """Every ``h1`` and ``h2`` in document order."""

    return [_Boundary(tag, None, _heading_level(tag)) for tag in body.find_all(["h1", "h2"])]


def split_at_boundaries(soup: BeautifulSoup, body: Tag, boundaries: list[_Boundary]) -> list[tuple[_Boundary | None, str]]:
    """Markdown segments keyed by the boundary that opens them.

    A marker paragraph is placed before each boundary element, the body is
    converted once, and the markdown is cut at the markers. The segment
    before the first marker has no boundary.
    """

    for number, boundary in enumerate(boundaries):
        marker = soup.new_tag("p")
        marker.string = f"{_MARKER_PREFIX}{number}X"
        boundary.element.insert_before(marker)

    markdown = body_to_markdown(body)
    segments: list[tuple[_Boundary | None, str]] = []
    pieces = _MARKER_RE.split(markdown)
    segments.append((None, pieces[0].strip()))
    for number, text in zip(pieces[1::2], pieces[2::2]):
        segments.append((boundaries[int(number)], text.strip()))
    return segments


class MOBIAdapter:
    """Extract chapters from MOBI/AZW containers via a pluggable decoder."""

    format_name = "mobi"

    def __init__(self, settings: ExtractionSettings | None = None, decoder: MobiDecoder | None = None) -> None:
        self._settings = settings or ExtractionSettings()
        self._decoder = decoder or MobiLibraryDecoder()

    def supports(self, filename: str, sniffed_bytes: bytes | None = None) -> bool:
        if filename.lower().endswith(_MOBI_SUFFIXES):
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes[60:68] in _PDB_TYPES

    def extract(self, buffer: bytes, filename: str) -> ParsedDocument:
        decoded = self._decoder.decode(buffer, filename)
        if len(decoded.html.strip()) < self._settings.mobi_min_body_chars:
            raise NoReadableContentError("MOBI file appears to be empty or corrupted", filename)

        soup = BeautifulSoup(decoded.html, "lxml")
        body = soup.body or soup
        inliner = ImageInliner(decoded.resources.get, build_archive_index(decoded.resources))
        inliner.rewrite(soup, decoded.document_path)

        title = first_non_empty(decoded.title) or title_from_filename(filename) or "Untitled"
        author = first_non_empty(decoded.author)
        drafts = self._chapters(soup, body, decoded.toc, title)
        logger.info(
            "MOBI %s: %d chapter candidates, %d images embedded, %d unresolved",
            filename,
            len(drafts),
            inliner.embedded,
            inliner.unresolved,
        )

        metadata = build_metadata(
            title,
            author,
            RawMetadata(
                isbn=decoded.isbn,
                publisher=decoded.publisher,
                date=decoded.date,
                language=decoded.language,
                description=decoded.description,
                subjects=decoded.subjects,
                file_size=len(buffer),
            ),
        )
        return assemble_document(
            source=filename,
            format_name="mobi",
            title=title,
            author=author,
            cover_image=self._cover_image(decoded),
            drafts=drafts,
            metadata=metadata,
            settings=self._settings,
        )

    def _chapters(self, soup: BeautifulSoup, body: Tag, toc: list[TocEntry], book_title: str) -> list[ChapterDraft]:
        lookahead = self._settings.table_lookahead
        minimum = self._settings.min_chapter_chars

        aligned = align_toc(body, toc) if toc else []
        if aligned:
            logger.debug("Aligned %d of %d TOC entries", len(aligned), len(toc))
            drafts = []
            for boundary, text in split_at_boundaries(soup, body, aligned):
                content = reconstruct_tables(text, lookahead=lookahead)
                if boundary is None and len(content) < minimum:
                    continue
                drafts.append(
                    ChapterDraft(
                        content=content,
                        title=boundary.title if boundary is not None else None,
                        level=boundary.level if boundary is not None else None,
                    )
                )
            return drafts

        boundaries = heading_boundaries(body)
        if not boundaries:
            content = reconstruct_tables(body_to_markdown(body), lookahead=lookahead)
            heading = first_heading(content)
            return [ChapterDraft(content=content, title=heading[0] if heading else book_title)]

        drafts = []
        for boundary, text in split_at_boundaries(soup, body, boundaries):
            content = reconstruct_tables(text, lookahead=lookahead)
            if len(content) < minimum:
                continue
            drafts.append(ChapterDraft(content=content, level=boundary.level if boundary is not None else None))
        return drafts

    @staticmethod
    def _cover_image(decoded: DecodedMobi) -> str | None:
        if not decoded.cover:
            return None
        mime = detect_signature(decoded.cover) or decoded.cover_media_type or sniff_image_mime(decoded.cover)
        return to_data_uri(decoded.cover, mime)
