"""Ebook ingestion package interfaces."""

from .config import ExtractionSettings
from .errors import (
    ExtractionError,
    FileTooLargeError,
    NoReadableContentError,
    ScannedDocumentError,
    StructuralError,
    UnsupportedFormatError,
)
from .ingestor import DocumentIngestor, build_default_ingestor, parse_book
from .models import Chapter, DocumentMetadata, ParsedDocument

__all__ = [
    "Chapter",
    "DocumentIngestor",
    "DocumentMetadata",
    "ExtractionError",
    "ExtractionSettings",
    "FileTooLargeError",
    "NoReadableContentError",
    "ParsedDocument",
    "ScannedDocumentError",
    "StructuralError",
    "UnsupportedFormatError",
    "build_default_ingestor",
    "parse_book",
]
