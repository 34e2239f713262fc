"""EPUB extractor: container and package parsing, spine walk, inlined images."""

from __future__ import annotations

from io import BytesIO
import logging
from zipfile import BadZipFile, ZipFile
import zlib

from bs4 import BeautifulSoup

from shelfparse.ingestion.archive import ArchiveIndex, build_archive_index, resolve_archive_path
from shelfparse.ingestion.assembly import assemble_document
from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import StructuralError
from shelfparse.ingestion.folding import Skipped, collect
from shelfparse.ingestion.html_markdown import body_to_markdown, decode_markup
from shelfparse.ingestion.images import ImageInliner
from shelfparse.ingestion.metadata import RawMetadata, build_metadata
from shelfparse.ingestion.mime import detect_signature, sniff_image_mime, to_data_uri
from shelfparse.ingestion.models import ChapterDraft, ParsedDocument
from shelfparse.ingestion.normalization import first_non_empty, title_from_filename
from shelfparse.ingestion.packaging import (
    CONTAINER_PATH,
    ManifestItem,
    PackageDocument,
    locate_package,
    parse_package,
)
from shelfparse.ingestion.tables import reconstruct_tables

logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"
_EPUB_MIMETYPE = b"application/epub+zip"
_MEMBER_READ_ERRORS = (KeyError, BadZipFile, zlib.error, RuntimeError, NotImplementedError, EOFError, OSError)


class EPUBAdapter:
    """Extract chapters from EPUB spine items in reading order."""

    format_name = "epub"

    def __init__(self, settings: ExtractionSettings | None = None) -> None:
        self._settings = settings or ExtractionSettings()

    def supports(self, filename: str, sniffed_bytes: bytes | None = None) -> bool:
        if filename.lower().endswith(".epub"):
            return True
        if sniffed_bytes is None:
            return False
        return sniffed_bytes.startswith(_ZIP_MAGIC) and _EPUB_MIMETYPE in sniffed_bytes[:128]

    def extract(self, buffer: bytes, filename: str) -> ParsedDocument:
        try:
            archive = ZipFile(BytesIO(buffer))
        except (BadZipFile, OSError, ValueError) as exc:
            raise StructuralError(f"File is not a readable ZIP container: {exc}", filename) from exc

        with archive:
            return _EpubExtraction(archive, buffer_size=len(buffer), filename=filename, settings=self._settings).run()


class _EpubExtraction:
    """State owned by a single EPUB extraction call."""

    def __init__(self, archive: ZipFile, *, buffer_size: int, filename: str, settings: ExtractionSettings) -> None:
        self._archive = archive
        self._buffer_size = buffer_size
        self._filename = filename
        self._settings = settings
        self._index: ArchiveIndex = build_archive_index(archive.namelist())

    def run(self) -> ParsedDocument:
        logger.info("Indexed %d archive members in %s", len(self._index), self._filename)
        package = self._load_package()
        package_meta = package.read_metadata()

        title = first_non_empty(package_meta.title) or title_from_filename(self._filename) or "Untitled"
        author = first_non_empty(package_meta.author)
        cover_image = self._cover_image(package, package_meta.cover_id)

        inliner = ImageInliner(self._read_member, self._index, package_dir=package.package_dir)
        fold = collect(
            package.spine,
            lambda idref: self._spine_item(idref, package, inliner),
            label=lambda idref: f"spine item {idref!r}",
        )
        logger.info(
            "EPUB %s: %d chapter candidates, %d skipped, %d images embedded, %d unresolved",
            self._filename,
            len(fold.values),
            len(fold.skipped),
            inliner.embedded,
            inliner.unresolved,
        )

        metadata = build_metadata(
            title,
            author,
            RawMetadata(
                isbn=package_meta.isbn,
                identifiers=[value for value, _scheme in package_meta.identifiers],
                publisher=package_meta.publisher,
                date=package_meta.date,
                language=package_meta.language,
                description=package_meta.description,
                subjects=package_meta.subjects,
                page_count=len(package.manifest),
                file_size=self._buffer_size,
            ),
        )

        return assemble_document(
            source=self._filename,
            format_name="epub",
            title=title,
            author=author,
            cover_image=cover_image,
            drafts=fold.values,
            metadata=metadata,
            settings=self._settings,
        )

    def _read_member(self, path: str) -> bytes | None:
        try:
            return self._archive.read(path)
        except _MEMBER_READ_ERRORS as exc:
            logger.warning("Failed to read %s from %s: %s", path, self._filename, exc)
            return None

    def _load_package(self) -> PackageDocument:
        container_path = self._index.find_case_insensitive(CONTAINER_PATH)
        if container_path is None:
            raise StructuralError(f"Missing {CONTAINER_PATH}", self._filename)
        container_xml = self._read_member(container_path)
        if container_xml is None:
            raise StructuralError(f"Unreadable {CONTAINER_PATH}", self._filename)

        match = locate_package(container_xml, self._filename)
        package_path = self._index.find_case_insensitive(match.package_path)
        if package_path is None:
            raise StructuralError(f"Package document {match.package_path} not found in archive", self._filename)
        package_xml = self._read_member(package_path)
        if package_xml is None:
            raise StructuralError(f"Unreadable package document {package_path}", self._filename)
        return parse_package(package_xml, package_path, self._filename)

    def _member_for(self, item: ManifestItem, package: PackageDocument) -> str | None:
        direct = self._index.find_case_insensitive(package.href_to_path(item.href))
        if direct is not None:
            return direct
        return resolve_archive_path(item.href, package.path, self._index, package.package_dir)

    def _cover_image(self, package: PackageDocument, cover_id: str | None) -> str | None:
        item = package.cover_item(cover_id)
        if item is None:
            return None
        member = self._member_for(item, package)
        if member is None:
            logger.warning("Cover %s declared but missing from %s", item.href, self._filename)
            return None
        data = self._read_member(member)
        if not data:
            return None
        declared = item.media_type if item.is_image else None
        mime = detect_signature(data) or declared or sniff_image_mime(data, item.href)
        return to_data_uri(data, mime)

    def _spine_item(self, idref: str, package: PackageDocument, inliner: ImageInliner) -> ChapterDraft | Skipped | None:
        label = f"spine item {idref!r}"
        item = package.manifest.get(idref)
        if item is None:
            return Skipped(label, "not declared in manifest")
        if not item.is_document:
            return Skipped(label, f"unsupported media type {item.media_type or 'unknown'}")

        member = self._member_for(item, package)
        if member is None:
            return Skipped(label, f"{item.href} missing from archive")
        data = self._read_member(member)
        if data is None:
            return Skipped(label, f"{member} could not be read")

        soup = BeautifulSoup(decode_markup(data), "lxml")
        inliner.rewrite(soup, member)
        markdown = reconstruct_tables(body_to_markdown(soup), lookahead=self._settings.table_lookahead)
        if len(markdown) < self._settings.min_chapter_chars:
            logger.debug("Dropping short spine item %s (%d chars)", member, len(markdown))
            return None
        return ChapterDraft(content=markdown)
