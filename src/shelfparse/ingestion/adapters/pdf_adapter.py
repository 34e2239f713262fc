"""PDF extractor: positioned text runs, font-size headings, page chunking."""

from __future__ import annotations

import logging
import re

import pymupdf

from shelfparse.ingestion.assembly import assemble_document
from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import NoReadableContentError, ScannedDocumentError, StructuralError
from shelfparse.ingestion.folding import collect
from shelfparse.ingestion.metadata import RawMetadata, build_metadata
from shelfparse.ingestion.mime import sniff_image_mime, to_data_uri
from shelfparse.ingestion.models import ChapterDraft, ParsedDocument
from shelfparse.ingestion.normalization import first_non_empty, title_from_filename, truncate
from shelfparse.ingestion.pdf_layout import PageBlock, PageLayout, TextRun, chunk_pages, detect_chapters, layout_page
from shelfparse.ingestion.tables import reconstruct_tables

logger = logging.getLogger(__name__)

_PDF_MAGIC = b"%PDF-"
_PDF_DATE_RE = re.compile(r"^D:(\d{4})")
_KEYWORD_SPLIT_RE = re.compile(r"[,;]")
_BOLD_FONT_MARKERS = ("bold", "black", "heavy", "semibold", "demi")
_ITALIC_FONT_MARKERS = ("italic", "oblique")
_FLAG_ITALIC = 2
_FLAG_BOLD = 16
_COVER_ZOOM = 1.5


def _line_to_run(line: dict) -> TextRun | None:
    spans = [span for span in line.get("spans", ()) if span.get("text")]
    if not spans:
        return None
    text = "".join(span["text"] for span in spans)
    if not text.strip():
        return None

    longest = max(spans, key=lambda span: len(span["text"].strip()))
    font_name = str(longest.get("font") or "")
    lowered = font_name.lower()
    flags = int(longest.get("flags") or 0)
    x0, y0, x1, y1 = line.get("bbox", (0.0, 0.0, 0.0, 0.0))
    origin = spans[0].get("origin") or (x0, y1)
    return TextRun(
        text=text,
        x=float(x0),
        y=float(origin[1]),
        width=float(x1 - x0),
        height=float(y1 - y0),
        font_size=float(max(span.get("size") or 0.0 for span in spans)),
        font_name=font_name,
        bold=bool(flags & _FLAG_BOLD) or any(marker in lowered for marker in _BOLD_FONT_MARKERS),
        italic=bool(flags & _FLAG_ITALIC) or any(marker in lowered for marker in _ITALIC_FONT_MARKERS),
    )


def page_runs(page: pymupdf.Page) -> list[TextRun]:
    """Text lines of one page in reading order."""

    runs: list[TextRun] = []
    content = page.get_text("dict", sort=True)
    for block in content.get("blocks", ()):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", ()):
            run = _line_to_run(line)
            if run is not None:
                runs.append(run)
    return runs


class PDFAdapter:
    """Extract chapters from PDF text layout."""

    format_name = "pdf"

    def __init__(self, settings: ExtractionSettings | None = None) -> None:
        self._settings = settings or ExtractionSettings()

    def supports(self, filename: str, sniffed_bytes: bytes | None = None) -> bool:
        if filename.lower().endswith(".pdf"):
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes.startswith(_PDF_MAGIC)

    def extract(self, buffer: bytes, filename: str) -> ParsedDocument:
        try:
            doc = pymupdf.open(stream=buffer, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise StructuralError(f"File is not a readable PDF: {exc}", filename) from exc

        with doc:
            if doc.needs_pass:
                raise StructuralError("PDF is encrypted", filename)
            if doc.page_count == 0:
                raise StructuralError("PDF has no pages", filename)
            return _PdfExtraction(doc, buffer_size=len(buffer), filename=filename, settings=self._settings).run()


class _PdfExtraction:
    """State owned by a single PDF extraction call."""

    def __init__(self, doc: pymupdf.Document, *, buffer_size: int, filename: str, settings: ExtractionSettings) -> None:
        self._doc = doc
        self._buffer_size = buffer_size
        self._filename = filename
        self._settings = settings
        self._image_cache: dict[int, str | None] = {}

    def run(self) -> ParsedDocument:
        page_count = self._doc.page_count
        doc_metadata = self._doc.metadata or {}
        title = first_non_empty(doc_metadata.get("title")) or title_from_filename(self._filename) or "Untitled"
        author = first_non_empty(doc_metadata.get("author"))

        fold = collect(
            range(page_count),
            self._page_layout,
            label=lambda index: f"page {index + 1}",
        )
        pages = fold.values
        logger.info(
            "PDF %s: %d/%d pages laid out, %d images embedded",
            self._filename,
            len(pages),
            page_count,
            sum(1 for uri in self._image_cache.values() if uri is not None),
        )

        if not any(page.has_text for page in pages):
            raise ScannedDocumentError(
                "No text layer found on any page; the PDF is likely scanned and needs OCR",
                self._filename,
            )

        drafts = self._chapters(pages, page_count)
        if not any(draft.content for draft in drafts):
            raise NoReadableContentError("No readable text found in PDF file", self._filename)

        metadata = build_metadata(
            title,
            author,
            RawMetadata(
                publisher=doc_metadata.get("producer"),
                date=self._creation_year(doc_metadata.get("creationDate")),
                description=doc_metadata.get("subject"),
                subjects=_KEYWORD_SPLIT_RE.split(doc_metadata.get("keywords") or ""),
                page_count=page_count,
                file_size=self._buffer_size,
            ),
        )

        return assemble_document(
            source=self._filename,
            format_name="pdf",
            title=title,
            author=author,
            cover_image=self._cover_image(),
            drafts=drafts,
            metadata=metadata,
            settings=self._settings,
            first_pages_text=self._first_pages_text(pages),
        )

    def _page_layout(self, index: int) -> PageLayout:
        page = self._doc.load_page(index)
        layout = layout_page(
            page_runs(page),
            self._settings.heading_thresholds,
            self._settings.pdf_paragraph_gap_ratio,
            number=index + 1,
        )
        images = self._page_images(page)
        if images:
            layout.blocks[:0] = [PageBlock("image", f"![]({uri})") for uri in images]
        return layout

    def _page_images(self, page: pymupdf.Page) -> list[str]:
        uris: list[str] = []
        for image_info in page.get_images(full=True):
            xref = image_info[0]
            if xref not in self._image_cache:
                self._image_cache[xref] = self._extract_image(xref)
            uri = self._image_cache[xref]
            if uri is not None and uri not in uris:
                uris.append(uri)
        return uris

    def _extract_image(self, xref: int) -> str | None:
        try:
            extracted = self._doc.extract_image(xref)
        except (RuntimeError, ValueError) as exc:
            logger.warning("Failed to extract image xref=%d from %s: %s", xref, self._filename, exc)
            return None
        if not extracted or not extracted.get("image"):
            return None

        minimum = self._settings.pdf_min_image_px
        width = int(extracted.get("width") or 0)
        height = int(extracted.get("height") or 0)
        if width < minimum or height < minimum:
            logger.debug("Skipping %dx%d image xref=%d", width, height, xref)
            return None
        data = extracted["image"]
        return to_data_uri(data, sniff_image_mime(data, extracted.get("ext")))

    def _chapters(self, pages: list[PageLayout], page_count: int) -> list[ChapterDraft]:
        drafts, boundaries = detect_chapters(pages)
        single_long = len(drafts) == 1 and page_count > self._settings.pdf_single_chapter_max_pages
        if boundaries == 0 or single_long:
            logger.info(
                "PDF %s: %d heading boundaries; chunking %d pages by %d",
                self._filename,
                boundaries,
                len(pages),
                self._settings.pdf_chunk_pages,
            )
            drafts = chunk_pages(pages, self._settings.pdf_chunk_pages)

        lookahead = self._settings.table_lookahead
        return [
            ChapterDraft(
                content=reconstruct_tables(draft.content, lookahead=lookahead),
                title=draft.title,
                level=draft.level,
            )
            for draft in drafts
        ]

    def _first_pages_text(self, pages: list[PageLayout]) -> str | None:
        leading = pages[: self._settings.first_pages_pages]
        text = "\n\n".join(page.markdown(include_images=False) for page in leading if page.has_text)
        return truncate(text, self._settings.first_pages_chars) or None

    def _cover_image(self) -> str | None:
        if not self._settings.render_pdf_cover:
            return None
        try:
            pixmap = self._doc.load_page(0).get_pixmap(matrix=pymupdf.Matrix(_COVER_ZOOM, _COVER_ZOOM))
            return to_data_uri(pixmap.tobytes("png"), "image/png")
        except (RuntimeError, ValueError) as exc:
            logger.warning("Failed to render cover for %s: %s", self._filename, exc)
            return None

    @staticmethod
    def _creation_year(raw: str | None) -> str | None:
        if not raw:
            return None
        match = _PDF_DATE_RE.match(raw.strip())
        return match.group(1) if match else raw
