"""Typed failures raised by the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    STRUCTURAL = "structural"
    NO_CONTENT = "no_content"
    LIKELY_SCANNED = "likely_scanned"
    UNSUPPORTED = "unsupported"
    TOO_LARGE = "too_large"
    INTERNAL = "internal"


@dataclass(slots=True)
class ExtractionError(Exception):
    """Document-level failure; no partial result accompanies it."""

    message: str
    source: str | None = None

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} (source={self.source})"
        return self.message


class StructuralError(ExtractionError):
    """A required container artifact is missing or unparsable."""

    kind = ErrorKind.STRUCTURAL


class NoReadableContentError(ExtractionError):
    """The container is well-formed but no usable chapter survived."""

    kind = ErrorKind.NO_CONTENT


class ScannedDocumentError(ExtractionError):
    """No page of a PDF carried a text layer; OCR would be required."""

    kind = ErrorKind.LIKELY_SCANNED


class UnsupportedFormatError(ExtractionError):
    kind = ErrorKind.UNSUPPORTED


class FileTooLargeError(ExtractionError):
    kind = ErrorKind.TOO_LARGE
