"""Routing entrypoint: format tag to adapter, with size and error policy."""

from __future__ import annotations

import logging
from pathlib import Path

from shelfparse.ingestion.adapters import build_default_adapters
from shelfparse.ingestion.adapters.base import BookAdapter
from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import ExtractionError, FileTooLargeError, UnsupportedFormatError
from shelfparse.ingestion.models import ParsedDocument

logger = logging.getLogger(__name__)

_SUFFIX_FORMATS = {
    ".epub": "epub",
    ".pdf": "pdf",
    ".mobi": "mobi",
    ".azw": "mobi",
    ".azw3": "mobi",
    ".prc": "mobi",
}


def format_from_filename(filename: str) -> str | None:
    """Format tag implied by a file extension, if any."""

    return _SUFFIX_FORMATS.get(Path(filename).suffix.lower())


class DocumentIngestor:
    """Resolve the right adapter for a format tag and return the parsed book."""

    def __init__(self, settings: ExtractionSettings | None = None, sniff_bytes: int = 4096) -> None:
        self._settings = settings or ExtractionSettings()
        self._sniff_bytes = sniff_bytes
        self._adapter_map: dict[str, BookAdapter] = {}

    @property
    def settings(self) -> ExtractionSettings:
        return self._settings

    @property
    def adapter_map(self) -> dict[str, BookAdapter]:
        """Registered adapters keyed by format tag."""

        return dict(self._adapter_map)

    def register_adapter(self, name: str, adapter: BookAdapter) -> None:
        """Register an adapter implementation by format tag."""

        if not name:
            raise ValueError("Adapter name cannot be empty")
        self._adapter_map[name] = adapter

    def parse(self, buffer: bytes, filename: str, format_name: str) -> ParsedDocument:
        """Parse an in-memory book; the format tag is trusted, never re-sniffed."""

        adapter = self._adapter_map.get(format_name.lower())
        if adapter is None:
            raise UnsupportedFormatError(f"Unsupported format {format_name!r}", filename)

        limit = self._settings.max_file_bytes
        if limit and len(buffer) > limit:
            raise FileTooLargeError(f"File is {len(buffer)} bytes; the limit is {limit}", filename)

        logger.info("Parsing %s as %s (%d bytes)", filename, format_name, len(buffer))
        try:
            parsed = adapter.extract(buffer, filename)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Adapter extraction failed: {exc}", filename) from exc

        if not isinstance(parsed, ParsedDocument):
            raise ExtractionError("Adapter returned non-canonical output", filename)
        return parsed

    def parse_path(self, path: str | Path, format_name: str | None = None) -> ParsedDocument:
        """Read a file and parse it, taking the format from the extension or content."""

        source = Path(path)
        buffer = self._read_bytes(source)
        resolved = format_name or format_from_filename(source.name) or self._sniff_format(source.name, buffer)
        if resolved is None:
            raise UnsupportedFormatError("No adapter recognises this file", str(source))
        return self.parse(buffer, source.name, resolved)

    def _sniff_format(self, filename: str, buffer: bytes) -> str | None:
        sniffed = buffer[: self._sniff_bytes]
        for name, adapter in self._adapter_map.items():
            if adapter.supports(filename, sniffed):
                return name
        return None

    def _read_bytes(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ExtractionError(f"Failed to read source file: {exc}", str(path)) from exc


def build_default_ingestor(settings: ExtractionSettings | None = None) -> DocumentIngestor:
    ingestor = DocumentIngestor(settings)
    for name, adapter in build_default_adapters(settings).items():
        ingestor.register_adapter(name, adapter)
    return ingestor


def parse_book(
    buffer: bytes,
    filename: str,
    format_name: str,
    settings: ExtractionSettings | None = None,
) -> ParsedDocument:
    """Parse one uploaded book with the default adapters."""

    return build_default_ingestor(settings).parse(buffer, filename, format_name)
