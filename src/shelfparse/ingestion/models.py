"""Normalized document structures shared by all format extractors."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Chapter:
    """One reading-order unit of a parsed document."""

    title: str
    content: str
    level: int = 1
    order: int = 0


@dataclass(slots=True)
class DocumentMetadata:
    """Normalized metadata; presence of each field depends on the source format."""

    isbn: str | None = None
    publisher: str | None = None
    publication_year: int | None = None
    language: str | None = None
    description: str | None = None
    subjects: list[str] = field(default_factory=list)
    page_count: int | None = None
    file_size: int | None = None
    normalized_author: str | None = None
    normalized_title: str | None = None


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    """Single extraction result handed back to the caller."""

    title: str
    author: str | None
    cover_image: str | None
    markdown: str
    chapters: tuple[Chapter, ...]
    metadata: DocumentMetadata | None = None
    first_pages_text: str | None = None
    format_name: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Plain representation suitable for JSON output."""

        metadata = self.metadata
        return {
            "title": self.title,
            "author": self.author,
            "format": self.format_name,
            "has_cover": self.cover_image is not None,
            "chapter_count": len(self.chapters),
            "chapters": [
                {"order": chapter.order, "title": chapter.title, "level": chapter.level}
                for chapter in self.chapters
            ],
            "metadata": None
            if metadata is None
            else {
                "isbn": metadata.isbn,
                "publisher": metadata.publisher,
                "publication_year": metadata.publication_year,
                "language": metadata.language,
                "description": metadata.description,
                "subjects": list(metadata.subjects),
                "page_count": metadata.page_count,
                "file_size": metadata.file_size,
                "normalized_author": metadata.normalized_author,
                "normalized_title": metadata.normalized_title,
            },
        }


@dataclass(frozen=True, slots=True)
class ImageCacheEntry:
    """Inlined image reused across chapters of one extraction."""

    data_uri: str
    width: int
    height: int


@dataclass(slots=True)
class ChapterDraft:
    """Chapter content before titles and order are assigned."""

    content: str
    title: str | None = None
    level: int | None = None
