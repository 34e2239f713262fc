"""Metadata canonicalization, storage slugs and identifier validation."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
import unicodedata
from typing import Iterable

from shelfparse.ingestion.models import DocumentMetadata
from shelfparse.ingestion.normalization import normalize_whitespace

UNKNOWN_AUTHOR = "unknown-author"
UNTITLED = "untitled"

_SEPARATOR_RE = re.compile(r"[\s\-_.]+")
_UNSAFE_RE = re.compile(r"[^a-z0-9\-]")
_HYPHEN_RUN_RE = re.compile(r"-+")
_AUTHOR_SPLIT_RE = re.compile(r"[,;&|]")
_ISBN_STRIP_RE = re.compile(r"[^0-9X]", re.IGNORECASE)
_ISBN_PREFIX_RE = re.compile(r"^\s*(urn:)?isbn[:\s]*", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
_LANGUAGE_CODE_RE = re.compile(r"^([a-z]{2,3})(?:[-_][a-z0-9]+)*$")
_SUBJECT_SPLIT_RE = re.compile(r"[,;]")

_ISO_639_2: dict[str, str] = {
    "eng": "en",
    "fra": "fr",
    "fre": "fr",
    "spa": "es",
    "deu": "de",
    "ger": "de",
    "ita": "it",
    "por": "pt",
    "rus": "ru",
    "zho": "zh",
    "chi": "zh",
    "jpn": "ja",
    "kor": "ko",
    "nld": "nl",
    "dut": "nl",
    "pol": "pl",
    "ukr": "uk",
    "ara": "ar",
    "heb": "he",
    "tur": "tr",
    "swe": "sv",
}

_LANGUAGE_NAMES: dict[str, str] = {
    "english": "en",
    "french": "fr",
    "français": "fr",
    "francais": "fr",
    "spanish": "es",
    "español": "es",
    "espanol": "es",
    "german": "de",
    "deutsch": "de",
    "italian": "it",
    "italiano": "it",
    "portuguese": "pt",
    "português": "pt",
    "portugues": "pt",
    "russian": "ru",
    "русский": "ru",
    "chinese": "zh",
    "中文": "zh",
    "japanese": "ja",
    "日本語": "ja",
    "korean": "ko",
    "한국어": "ko",
}

_ISBN13_TEXT_RE = re.compile(r"ISBN[-\s]?(?:13)?[:\s]?(97[89][\d\-]{10,17})", re.IGNORECASE)
_ISBN10_TEXT_RE = re.compile(r"ISBN[-\s]?(?:10)?[:\s]?([\dX\-]{10,17})", re.IGNORECASE)
_PUBLISHER_TAIL = r"([A-Z][^\n\r]{3,50}?)(?:\n|$|,|\s{2,})"
_PUBLISHER_TEXT_RES = tuple(
    re.compile(prefix + _PUBLISHER_TAIL, re.IGNORECASE)
    for prefix in (
        r"Published\s+by[:\s]+",
        r"Publisher[:\s]+",
        r"Imprint[:\s]+",
        r"©\s*\d{4}\s+by\s+",
        r"Copyright\s+©?\s*\d{4}\s+by\s+",
    )
)
_PUBLISHER_SUFFIX_RE = re.compile(r"\s+(Inc\.|LLC|Ltd\.|Press|Books|Publishing).*$", re.IGNORECASE)
_COPYRIGHT_YEAR_RES = (
    re.compile(r"Copyright\s+©?\s*(\d{4})", re.IGNORECASE),
    re.compile(r"©\s*(\d{4})"),
    re.compile(r"\(c\)\s*(\d{4})", re.IGNORECASE),
    re.compile(r"First\s+published\s+(?:in\s+)?(\d{4})", re.IGNORECASE),
    re.compile(r"Published\s+(?:in\s+)?(\d{4})", re.IGNORECASE),
)


def slugify(text: str) -> str:
    """Lower-case, diacritic-free, filesystem-safe form of ``text``."""

    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    lowered = stripped.lower().strip()
    hyphenated = _SEPARATOR_RE.sub("-", lowered)
    safe = _UNSAFE_RE.sub("", hyphenated)
    return _HYPHEN_RUN_RE.sub("-", safe).strip("-")


def normalize_author(author: str | None) -> str:
    if not author:
        return UNKNOWN_AUTHOR
    names = [name.strip() for name in _AUTHOR_SPLIT_RE.split(author) if name.strip()]
    if not names:
        return UNKNOWN_AUTHOR
    primary = slugify(names[0]) or UNKNOWN_AUTHOR
    if len(names) > 1:
        return f"{primary}-and-others"
    return primary


def normalize_title(title: str | None) -> str:
    if not title:
        return UNTITLED
    return slugify(title) or UNTITLED


def validate_isbn(raw: str | None) -> str | None:
    """Return the cleaned ISBN-10/13 when its check digit is correct."""

    if not raw:
        return None
    cleaned = _ISBN_STRIP_RE.sub("", _ISBN_PREFIX_RE.sub("", raw)).upper()

    if len(cleaned) == 10:
        if not cleaned[:9].isdigit():
            return None
        total = sum(int(digit) * (10 - position) for position, digit in enumerate(cleaned[:9]))
        remainder = total % 11
        expected = "0" if remainder == 0 else "X" if remainder == 1 else str(11 - remainder)
        return cleaned if cleaned[9] == expected else None

    if len(cleaned) == 13:
        if not cleaned.isdigit():
            return None
        total = sum(int(digit) * (1 if position % 2 == 0 else 3) for position, digit in enumerate(cleaned[:12]))
        expected_digit = (10 - total % 10) % 10
        return cleaned if int(cleaned[12]) == expected_digit else None

    return None


def extract_year(text: str | int | None) -> int | None:
    if text is None:
        return None
    match = _YEAR_RE.search(str(text))
    if match is None:
        return None
    year = int(match.group(0))
    return year if 1900 <= year <= 2100 else None


def extract_language(text: str | None) -> str | None:
    """Map a language tag or name to an ISO 639-1 code."""

    if not text:
        return None
    lowered = text.strip().lower()
    code_match = _LANGUAGE_CODE_RE.match(lowered)
    if code_match is not None:
        primary = code_match.group(1)
        if len(primary) == 2:
            return primary
        if primary in _ISO_639_2:
            return _ISO_639_2[primary]
    for name, code in _LANGUAGE_NAMES.items():
        if name in lowered:
            return code
    return None


def split_subjects(subjects: str | Iterable[str] | None) -> list[str]:
    if not subjects:
        return []
    if isinstance(subjects, str):
        parts: Iterable[str] = _SUBJECT_SPLIT_RE.split(subjects)
    else:
        parts = subjects
    cleaned: list[str] = []
    for part in parts:
        value = normalize_whitespace(part)
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


@dataclass(slots=True)
class RawMetadata:
    """Format-specific metadata as read from a container, before normalization."""

    isbn: str | None = None
    publisher: str | None = None
    date: str | None = None
    publication_year: int | None = None
    language: str | None = None
    description: str | None = None
    subjects: list[str] | str | None = None
    page_count: int | None = None
    file_size: int | None = None
    identifiers: list[str] = field(default_factory=list)


def build_metadata(title: str, author: str | None, raw: RawMetadata | None = None) -> DocumentMetadata:
    """Canonicalize heterogeneous container metadata into ``DocumentMetadata``."""

    metadata = DocumentMetadata(
        normalized_author=normalize_author(author) if author else None,
        normalized_title=normalize_title(title),
    )
    if raw is None:
        return metadata

    metadata.isbn = validate_isbn(raw.isbn)
    if metadata.isbn is None:
        for identifier in raw.identifiers:
            metadata.isbn = validate_isbn(identifier)
            if metadata.isbn is not None:
                break

    if raw.publisher:
        metadata.publisher = normalize_whitespace(raw.publisher) or None
    if raw.publication_year:
        metadata.publication_year = extract_year(raw.publication_year)
    elif raw.date:
        metadata.publication_year = extract_year(raw.date)
    metadata.language = extract_language(raw.language)
    if raw.description:
        metadata.description = raw.description.strip() or None
    metadata.subjects = split_subjects(raw.subjects)
    if raw.page_count:
        metadata.page_count = int(raw.page_count)
    if raw.file_size is not None:
        metadata.file_size = int(raw.file_size)
    return metadata


def generate_book_path(metadata: DocumentMetadata) -> str:
    """Storage path ``<author-slug>/<title-slug>`` for a parsed book."""

    author = metadata.normalized_author or UNKNOWN_AUTHOR
    title = metadata.normalized_title or UNTITLED
    return f"{author}/{title}"


def _ordinal(number: int) -> str:
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def handle_edition_conflict(base_path: str, existing_paths: Iterable[str]) -> str:
    """First free ``<base>-<Nth>-ed`` path, starting at the 2nd edition."""

    taken = set(existing_paths)
    edition = 2
    candidate = f"{base_path}-{_ordinal(edition)}-ed"
    while candidate in taken:
        edition += 1
        candidate = f"{base_path}-{_ordinal(edition)}-ed"
    return candidate


@dataclass(slots=True)
class PublicationInfo:
    isbn: str | None = None
    publisher: str | None = None
    publication_year: int | None = None


def extract_publication_info_from_text(text: str | None, *, max_year: int | None = None) -> PublicationInfo:
    """Pull ISBN, publisher and copyright year out of front-matter prose.

    ``max_year`` bounds accepted copyright years (default 2100).
    """

    info = PublicationInfo()
    if not text:
        return info

    upper_year = 2100 if max_year is None else max_year

    match = _ISBN13_TEXT_RE.search(text)
    if match is not None:
        digits = re.sub(r"\D", "", match.group(1))
        if len(digits) == 13:
            info.isbn = validate_isbn(digits)
    if info.isbn is None:
        match = _ISBN10_TEXT_RE.search(text)
        if match is not None:
            digits = _ISBN_STRIP_RE.sub("", match.group(1))
            if len(digits) == 10:
                info.isbn = validate_isbn(digits)

    for pattern in _PUBLISHER_TEXT_RES:
        match = pattern.search(text)
        if match is None:
            continue
        publisher = _PUBLISHER_SUFFIX_RE.sub(r" \1", match.group(1).strip())
        publisher = normalize_whitespace(publisher)
        if 3 <= len(publisher) <= 50:
            info.publisher = publisher
            break

    for pattern in _COPYRIGHT_YEAR_RES:
        match = pattern.search(text)
        if match is None:
            continue
        year = int(match.group(1))
        if 1900 <= year <= upper_year:
            info.publication_year = year
            break

    return info


def enrich_from_text(metadata: DocumentMetadata, text: str | None) -> DocumentMetadata:
    """Fill missing ISBN, publisher and year from front-matter text in place."""

    if not text or (metadata.isbn and metadata.publisher and metadata.publication_year):
        return metadata
    info = extract_publication_info_from_text(text)
    if metadata.isbn is None:
        metadata.isbn = info.isbn
    if metadata.publisher is None:
        metadata.publisher = info.publisher
    if metadata.publication_year is None:
        metadata.publication_year = info.publication_year
    return metadata
