"""Shared adapter contract for per-format book extractors."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from shelfparse.ingestion.models import ParsedDocument


@runtime_checkable
class BookAdapter(Protocol):
    """Protocol that every format extractor must implement."""

    format_name: str

    def supports(self, filename: str, sniffed_bytes: bytes | None = None) -> bool:
        """Return True when this adapter can parse the given upload."""

    def extract(self, buffer: bytes, filename: str) -> ParsedDocument:
        """Extract a whole in-memory book into the normalized document model."""
