"""Per-format book extractors and their shared contract."""

import logging

from shelfparse.ingestion.config import ExtractionSettings

from .base import BookAdapter

logger = logging.getLogger(__name__)

try:
    from .pdf_adapter import PDFAdapter
except ImportError:
    PDFAdapter = None
    logger.warning("PDF support unavailable: install 'pymupdf'")

try:
    from .epub_adapter import EPUBAdapter
except ImportError:
    EPUBAdapter = None
    logger.warning("EPUB support unavailable: install 'beautifulsoup4', 'lxml' and 'markdownify'")

try:
    from .mobi_adapter import MOBIAdapter
except ImportError:
    MOBIAdapter = None
    logger.warning("MOBI support unavailable: install 'beautifulsoup4', 'lxml' and 'markdownify'")


def build_default_adapters(settings: ExtractionSettings | None = None) -> dict[str, BookAdapter]:
    """Return the default format adapter map keyed by format tag."""
    adapters: dict[str, BookAdapter] = {}
    if EPUBAdapter is not None:
        adapters["epub"] = EPUBAdapter(settings)
    if PDFAdapter is not None:
        adapters["pdf"] = PDFAdapter(settings)
    if MOBIAdapter is not None:
        adapters["mobi"] = MOBIAdapter(settings)
    return adapters


__all__ = [
    "BookAdapter",
    "EPUBAdapter",
    "PDFAdapter",
    "MOBIAdapter",
    "build_default_adapters",
]
