"""Tolerant parsing of EPUB packaging XML (container, OPF package, NCX)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import posixpath
import re
from typing import Callable
from urllib.parse import unquote

from bs4 import BeautifulSoup
from lxml import etree

from shelfparse.ingestion.archive import clean_reference, join_archive_path
from shelfparse.ingestion.errors import StructuralError
from shelfparse.ingestion.normalization import normalize_whitespace

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"

_SEARCH_MAX_NODES = 10_000
_SEARCH_MAX_DEPTH = 64
_BARE_ISBN_RE = re.compile(r"^[\dX\-]{10,17}$", re.IGNORECASE)


def _make_parser() -> etree.XMLParser:
    return etree.XMLParser(
        recover=True,
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )


def parse_xml(data: bytes) -> etree._Element | None:
    """Parse XML leniently; ``None`` when nothing usable could be recovered."""

    if not data or not data.strip():
        return None
    try:
        return etree.fromstring(data, parser=_make_parser())
    except etree.XMLSyntaxError:
        return None


def _local_name(node: etree._Element) -> str:
    tag = node.tag
    if not isinstance(tag, str):
        return ""
    return etree.QName(tag).localname


def _attr(node: etree._Element, name: str) -> str | None:
    """Attribute lookup that ignores namespace prefixes (``opf:scheme`` == ``scheme``)."""

    value = node.get(name)
    if value is None:
        for key, candidate in node.attrib.items():
            if etree.QName(key).localname == name:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


def _text(node: etree._Element) -> str:
    return normalize_whitespace("".join(node.itertext()))


# -- container descriptor ----------------------------------------------------


class ContainerLayout(Enum):
    ROOTFILES = "rootfiles"
    DIRECT_ROOTFILE = "direct_rootfile"
    NESTED_ROOTFILES = "nested_rootfiles"
    SEARCH = "search"


@dataclass(frozen=True, slots=True)
class ContainerMatch:
    layout: ContainerLayout
    package_path: str


def _pick_rootfile(nodes: list[etree._Element]) -> str | None:
    preferred = [node for node in nodes if (_attr(node, "media-type") or "").lower() == OPF_MEDIA_TYPE]
    for node in preferred + nodes:
        path = _attr(node, "full-path")
        if path:
            return path
    return None


def _xpath_matcher(layout: ContainerLayout, query: str) -> Callable[[etree._Element], ContainerMatch | None]:
    def matcher(root: etree._Element) -> ContainerMatch | None:
        path = _pick_rootfile(root.xpath(query))
        return ContainerMatch(layout, path) if path else None

    return matcher


def _search_full_path(root: etree._Element) -> ContainerMatch | None:
    """Bounded depth-first search for any element carrying ``full-path``."""

    stack: list[tuple[etree._Element, int]] = [(root, 0)]
    visited = 0
    while stack and visited < _SEARCH_MAX_NODES:
        node, depth = stack.pop()
        visited += 1
        if not isinstance(node.tag, str):
            continue
        path = _attr(node, "full-path")
        if path:
            return ContainerMatch(ContainerLayout.SEARCH, path)
        if depth < _SEARCH_MAX_DEPTH:
            stack.extend((child, depth + 1) for child in reversed(list(node)))
    return None


CONTAINER_MATCHERS: tuple[Callable[[etree._Element], ContainerMatch | None], ...] = (
    _xpath_matcher(
        ContainerLayout.ROOTFILES,
        "/*[local-name()='container']/*[local-name()='rootfiles']/*[local-name()='rootfile']",
    ),
    _xpath_matcher(
        ContainerLayout.DIRECT_ROOTFILE,
        "/*[local-name()='container']/*[local-name()='rootfile']",
    ),
    _xpath_matcher(
        ContainerLayout.NESTED_ROOTFILES,
        "//*[local-name()='rootfiles']//*[local-name()='rootfile']",
    ),
    _search_full_path,
)


def locate_package(container_xml: bytes, source: str | None = None) -> ContainerMatch:
    """Find the package document path declared by ``META-INF/container.xml``."""

    root = parse_xml(container_xml)
    if root is None:
        raise StructuralError("Container descriptor is not parseable XML", source)
    for matcher in CONTAINER_MATCHERS:
        match = matcher(root)
        if match is not None:
            logger.debug("Container layout %s -> %s", match.layout.value, match.package_path)
            return ContainerMatch(match.layout, unquote(match.package_path).lstrip("/"))
    raise StructuralError("Container descriptor does not reference a package document", source)


# -- package document --------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ManifestItem:
    id: str
    href: str
    media_type: str
    properties: frozenset[str] = frozenset()

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def is_document(self) -> bool:
        lowered = self.href.lower().split("#", 1)[0]
        return (
            self.media_type in ("application/xhtml+xml", "text/html", "application/x-dtbook+xml")
            or lowered.endswith((".xhtml", ".html", ".htm"))
        )


@dataclass(slots=True)
class PackageMetadata:
    titles: list[str] = field(default_factory=list)
    creators: list[str] = field(default_factory=list)
    identifiers: list[tuple[str, str | None]] = field(default_factory=list)
    publisher: str | None = None
    date: str | None = None
    language: str | None = None
    description: str | None = None
    subjects: list[str] = field(default_factory=list)
    cover_id: str | None = None

    @property
    def title(self) -> str | None:
        return self.titles[0] if self.titles else None

    @property
    def author(self) -> str | None:
        return ", ".join(self.creators) if self.creators else None

    @property
    def isbn(self) -> str | None:
        for value, scheme in self.identifiers:
            if scheme and scheme.upper() == "ISBN":
                return value
        for value, _scheme in self.identifiers:
            lowered = value.lower()
            if lowered.startswith("urn:isbn:") or _BARE_ISBN_RE.match(value):
                return value
        return None


@dataclass(slots=True)
class PackageDocument:
    path: str
    metadata_block: etree._Element
    manifest: dict[str, ManifestItem]
    spine: list[str]
    toc_id: str | None = None

    @property
    def package_dir(self) -> str:
        return posixpath.dirname(self.path)

    def href_to_path(self, href: str) -> str:
        return join_archive_path(self.package_dir, clean_reference(href))

    def read_metadata(self) -> PackageMetadata:
        block = self.metadata_block
        result = PackageMetadata()
        for node in block.iter():
            name = _local_name(node)
            if not name:
                continue
            if name == "title":
                value = _text(node)
                if value:
                    result.titles.append(value)
            elif name == "creator":
                value = _text(node)
                if value and value not in result.creators:
                    result.creators.append(value)
            elif name == "identifier":
                value = _text(node)
                if value:
                    result.identifiers.append((value, _attr(node, "scheme")))
            elif name == "publisher" and result.publisher is None:
                result.publisher = _text(node) or None
            elif name == "date" and result.date is None:
                result.date = _text(node) or None
            elif name == "language" and result.language is None:
                result.language = _text(node) or None
            elif name == "description" and result.description is None:
                result.description = _clean_description(_text(node))
            elif name == "subject":
                value = _text(node)
                if value and value not in result.subjects:
                    result.subjects.append(value)
            elif name == "meta" and result.cover_id is None:
                if (_attr(node, "name") or "").lower() == "cover":
                    result.cover_id = _attr(node, "content")
        return result

    def cover_item(self, cover_id: str | None) -> ManifestItem | None:
        """Cover manifest item: ``meta name=cover``, EPUB 3 ``cover-image``, then name heuristics."""

        if cover_id:
            item = self.manifest.get(cover_id)
            if item is not None and (item.is_image or not item.is_document):
                return item
            for candidate in self.manifest.values():
                if candidate.href == cover_id and candidate.is_image:
                    return candidate
        for candidate in self.manifest.values():
            if "cover-image" in candidate.properties:
                return candidate
        for candidate in self.manifest.values():
            if candidate.is_image and ("cover" in candidate.id.lower() or "cover" in candidate.href.lower()):
                return candidate
        return None


def _clean_description(value: str) -> str | None:
    if not value:
        return None
    if "<" in value and ">" in value:
        value = normalize_whitespace(BeautifulSoup(value, "lxml").get_text(" "))
    return value or None


def _first_child(root: etree._Element, name: str) -> etree._Element | None:
    found = root.xpath(f".//*[local-name()='{name}']")
    return found[0] if found else None


def parse_package(xml_bytes: bytes, package_path: str, source: str | None = None) -> PackageDocument:
    """Parse an OPF package document, tolerating ``metadata`` / ``opf:metadata``."""

    root = parse_xml(xml_bytes)
    if root is None:
        raise StructuralError(f"Package document {package_path} is not parseable XML", source)

    metadata_block = _first_child(root, "metadata")
    if metadata_block is None:
        raise StructuralError("Package document has no metadata block", source)
    manifest_node = _first_child(root, "manifest")
    if manifest_node is None:
        raise StructuralError("Package document has no manifest", source)
    spine_node = _first_child(root, "spine")
    if spine_node is None:
        raise StructuralError("Package document has no spine", source)

    manifest: dict[str, ManifestItem] = {}
    for node in manifest_node:
        if _local_name(node) != "item":
            continue
        item_id = _attr(node, "id")
        href = _attr(node, "href")
        if not item_id or not href:
            continue
        manifest[item_id] = ManifestItem(
            id=item_id,
            href=href,
            media_type=(_attr(node, "media-type") or "").lower(),
            properties=frozenset((_attr(node, "properties") or "").split()),
        )

    spine: list[str] = []
    for node in spine_node:
        if _local_name(node) != "itemref":
            continue
        idref = _attr(node, "idref")
        if idref:
            spine.append(idref)
    if not spine:
        raise StructuralError("Package spine lists no items", source)

    return PackageDocument(
        path=package_path,
        metadata_block=metadata_block,
        manifest=manifest,
        spine=spine,
        toc_id=_attr(spine_node, "toc"),
    )


# -- NCX table of contents ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class TocEntry:
    title: str
    href: str | None = None
    level: int = 1


def parse_ncx(xml_bytes: bytes) -> list[TocEntry]:
    """Flatten an NCX ``navMap`` into document-order entries."""

    root = parse_xml(xml_bytes)
    if root is None:
        return []
    nav_map = _first_child(root, "navMap")
    if nav_map is None:
        return []

    entries: list[TocEntry] = []

    def walk(node: etree._Element, level: int) -> None:
        for child in node:
            if _local_name(child) != "navPoint":
                continue
            label = _first_child(child, "text")
            content = next((el for el in child if _local_name(el) == "content"), None)
            title = _text(label) if label is not None else ""
            if title:
                entries.append(TocEntry(title=title, href=_attr(content, "src") if content is not None else None, level=level))
            walk(child, level + 1)

    walk(nav_map, 1)
    return entries
