"""MOBI/KF8 container decoding behind a small protocol.

The default decoder delegates the PDB record format to the ``mobi`` package
(a KindleUnpack port) and reads back what it unpacks: either a KF8 ``.epub``
or the legacy ``mobi7`` tree (``book.html``, ``content.opf``, ``toc.ncx``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from io import BytesIO
from pathlib import Path
import shutil
import tempfile
from typing import Protocol, runtime_checkable
from zipfile import BadZipFile, ZipFile

from bs4 import BeautifulSoup

from shelfparse.ingestion.archive import build_archive_index, resolve_archive_path
from shelfparse.ingestion.errors import StructuralError, UnsupportedFormatError
from shelfparse.ingestion.html_markdown import decode_markup
from shelfparse.ingestion.packaging import (
    CONTAINER_PATH,
    PackageDocument,
    PackageMetadata,
    TocEntry,
    locate_package,
    parse_ncx,
    parse_package,
)

logger = logging.getLogger(__name__)

_MOBI7_HTML = "book.html"
_MOBI7_OPF = "content.opf"
_MOBI7_NCX = "toc.ncx"


@dataclass(slots=True)
class DecodedMobi:
    """What a decoder recovered from a MOBI container."""

    html: str
    title: str | None = None
    author: str | None = None
    publisher: str | None = None
    isbn: str | None = None
    language: str | None = None
    description: str | None = None
    subjects: list[str] = field(default_factory=list)
    date: str | None = None
    cover: bytes | None = None
    cover_media_type: str | None = None
    toc: list[TocEntry] = field(default_factory=list)
    resources: dict[str, bytes] = field(default_factory=dict)
    document_path: str = _MOBI7_HTML

    def apply_package_metadata(self, meta: PackageMetadata) -> None:
        self.title = meta.title
        self.author = meta.author
        self.publisher = meta.publisher
        self.isbn = meta.isbn
        self.language = meta.language
        self.description = meta.description
        self.subjects = list(meta.subjects)
        self.date = meta.date


@runtime_checkable
class MobiDecoder(Protocol):
    """Turns raw MOBI/AZW bytes into HTML, metadata and resources."""

    def decode(self, buffer: bytes, filename: str) -> DecodedMobi:
        """Decode a whole in-memory container."""


def _import_mobi():
    try:
        import mobi
    except ImportError as exc:
        raise UnsupportedFormatError("MOBI support unavailable: install 'mobi'") from exc
    return mobi


def _parse_opf(data: bytes, path: str, filename: str) -> PackageDocument | None:
    try:
        return parse_package(data, path, filename)
    except StructuralError as exc:
        logger.warning("Ignoring unusable %s in %s: %s", path, filename, exc)
        return None


class MobiLibraryDecoder:
    """Decoder backed by ``mobi.extract``; temporary files never outlive a call."""

    def decode(self, buffer: bytes, filename: str) -> DecodedMobi:
        mobi = _import_mobi()
        suffix = Path(filename).suffix or ".mobi"

        with tempfile.TemporaryDirectory(prefix="shelfparse-mobi-") as input_dir:
            source = Path(input_dir) / f"book{suffix}"
            source.write_bytes(buffer)
            try:
                output_dir, output_file = mobi.extract(str(source))
            except Exception as exc:  # noqa: BLE001 - third-party decoder boundary
                raise StructuralError(f"MOBI container could not be decoded: {exc}", filename) from exc

        try:
            output = Path(output_file)
            if output.suffix.lower() == ".epub":
                return self._from_epub(output.read_bytes(), filename)
            return self._from_mobi7(Path(output_dir), output, filename)
        finally:
            shutil.rmtree(output_dir, ignore_errors=True)

    def _from_mobi7(self, output_dir: Path, html_file: Path, filename: str) -> DecodedMobi:
        if html_file.suffix.lower() not in {".html", ".htm"}:
            raise StructuralError(f"MOBI decoder produced unsupported output {html_file.name}", filename)
        root = html_file.parent
        decoded = DecodedMobi(html=decode_markup(html_file.read_bytes()), document_path=html_file.name)

        for path in sorted(root.rglob("*")):
            if path.is_file() and path != html_file:
                decoded.resources[path.relative_to(root).as_posix()] = path.read_bytes()

        opf = decoded.resources.get(_MOBI7_OPF)
        package = _parse_opf(opf, _MOBI7_OPF, filename) if opf else None
        if package is not None:
            meta = package.read_metadata()
            decoded.apply_package_metadata(meta)
            cover = package.cover_item(meta.cover_id)
            if cover is not None:
                decoded.cover = decoded.resources.get(package.href_to_path(cover.href))
                decoded.cover_media_type = cover.media_type or None

        ncx = decoded.resources.get(_MOBI7_NCX)
        if ncx:
            decoded.toc = parse_ncx(ncx)
        logger.debug("Decoded mobi7 output for %s (%d resources)", filename, len(decoded.resources))
        return decoded

    def _from_epub(self, data: bytes, filename: str) -> DecodedMobi:
        try:
            archive = ZipFile(BytesIO(data))
        except BadZipFile as exc:
            raise StructuralError(f"KF8 output is not a readable ZIP: {exc}", filename) from exc

        with archive:
            index = build_archive_index(archive.namelist())
            container_path = index.find_case_insensitive(CONTAINER_PATH)
            if container_path is None:
                raise StructuralError(f"KF8 output lacks {CONTAINER_PATH}", filename)
            match = locate_package(archive.read(container_path), filename)
            package_path = index.find_case_insensitive(match.package_path)
            if package_path is None:
                raise StructuralError(f"KF8 package {match.package_path} not found", filename)
            package = parse_package(archive.read(package_path), package_path, filename)
            resources = {path: archive.read(path) for path in sorted(index.all_paths)}

        meta = package.read_metadata()
        bodies: list[str] = []
        for idref in package.spine:
            item = package.manifest.get(idref)
            if item is None or not item.is_document:
                continue
            path = index.find_case_insensitive(package.href_to_path(item.href))
            if path is None:
                logger.warning("KF8 spine item %s missing from %s", item.href, filename)
                continue
            soup = BeautifulSoup(decode_markup(resources[path]), "lxml")
            # archive-absolute references so the joined body resolves from the root
            for img in soup.find_all("img"):
                resolved = resolve_archive_path(img.get("src") or "", path, index, package.package_dir)
                if resolved is not None:
                    img["src"] = f"/{resolved}"
            body = soup.body or soup
            bodies.append(body.decode_contents())

        decoded = DecodedMobi(
            html=f"<html><body>{''.join(bodies)}</body></html>",
            resources=resources,
            document_path="",
        )
        decoded.apply_package_metadata(meta)
        cover = package.cover_item(meta.cover_id)
        if cover is not None:
            cover_path = index.find_case_insensitive(package.href_to_path(cover.href))
            if cover_path is not None:
                decoded.cover = resources[cover_path]
                decoded.cover_media_type = cover.media_type or None
        if package.toc_id and package.toc_id in package.manifest:
            ncx_path = index.find_case_insensitive(package.href_to_path(package.manifest[package.toc_id].href))
            if ncx_path is not None:
                decoded.toc = parse_ncx(resources[ncx_path])
        return decoded
