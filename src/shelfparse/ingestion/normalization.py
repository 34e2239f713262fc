"""Text normalization helpers shared by the extractors."""

from __future__ import annotations

import posixpath
import re
import unicodedata

_WHITESPACE_RE = re.compile(r"\s+")
_TITLE_SPLIT_RE = re.compile(r"[._\-]+")
_KNOWN_SUFFIXES = (".epub", ".pdf", ".mobi", ".azw", ".azw3", ".prc")


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(text: str) -> str:
    """Produce stable text for comparisons."""

    normalized = unicodedata.normalize("NFKC", text)
    return normalize_whitespace(normalized).casefold()


def first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value is None:
            continue
        cleaned = normalize_whitespace(value)
        if cleaned:
            return cleaned
    return None


def title_from_filename(filename: str) -> str:
    """Human-readable title derived from an upload filename."""

    name = posixpath.basename(filename.replace("\\", "/"))
    lowered = name.lower()
    for suffix in _KNOWN_SUFFIXES:
        if lowered.endswith(suffix):
            name = name[: -len(suffix)]
            break
    stem = _TITLE_SPLIT_RE.sub(" ", name)
    return normalize_whitespace(stem).title()


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]
