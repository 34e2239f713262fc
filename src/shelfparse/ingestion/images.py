"""Inlining of container images as data URIs."""

from __future__ import annotations

from io import BytesIO
import logging
from typing import Callable

from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from shelfparse.ingestion.archive import ArchiveIndex, resolve_archive_path
from shelfparse.ingestion.mime import sniff_image_mime, to_data_uri
from shelfparse.ingestion.models import ImageCacheEntry

logger = logging.getLogger(__name__)

_PASSTHROUGH_PREFIXES = ("data:", "http://", "https://", "//")
_SVG_IMAGE_ATTRS = ("xlink:href", "href")

MemberReader = Callable[[str], "bytes | None"]


def image_dimensions(data: bytes) -> tuple[int, int]:
    """Pixel size read from the image header; ``(0, 0)`` for vector or unknown data."""

    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return 0, 0
    return int(width), int(height)


def _is_passthrough(reference: str) -> bool:
    return reference.lower().startswith(_PASSTHROUGH_PREFIXES)


class ImageInliner:
    """Resolve markup image references inside one container and embed them.

    The cache is owned by one extraction call and keyed by the reference
    string exactly as it appeared in markup.
    """

    def __init__(
        self,
        read_member: MemberReader,
        index: ArchiveIndex,
        *,
        package_dir: str = "",
        cache: dict[str, ImageCacheEntry] | None = None,
    ) -> None:
        self._read_member = read_member
        self._index = index
        self._package_dir = package_dir
        self._cache: dict[str, ImageCacheEntry] = {} if cache is None else cache
        self.embedded = 0
        self.unresolved = 0

    @property
    def cache(self) -> dict[str, ImageCacheEntry]:
        return self._cache

    def inline(self, reference: str, document_path: str) -> ImageCacheEntry | None:
        cached = self._cache.get(reference)
        if cached is not None:
            return cached

        path = resolve_archive_path(reference, document_path, self._index, self._package_dir)
        if path is None:
            self.unresolved += 1
            logger.debug("Unresolved image %r in %s", reference, document_path)
            return None

        data = self._read_member(path)
        if not data:
            self.unresolved += 1
            logger.warning("Image %s could not be read", path)
            return None

        width, height = image_dimensions(data)
        entry = ImageCacheEntry(
            data_uri=to_data_uri(data, sniff_image_mime(data, path)),
            width=width,
            height=height,
        )
        self._cache[reference] = entry
        self.embedded += 1
        return entry

    def rewrite(self, soup: BeautifulSoup, document_path: str) -> int:
        """Replace local ``img``/SVG ``image`` references in place; returns the count rewritten."""

        rewritten = 0
        for img in soup.find_all("img"):
            src = (img.get("src") or "").strip()
            if not src or _is_passthrough(src):
                continue
            entry = self.inline(src, document_path)
            if entry is not None:
                img["src"] = entry.data_uri
                rewritten += 1

        for image in soup.find_all("image"):
            for attr in _SVG_IMAGE_ATTRS:
                reference = (image.get(attr) or "").strip()
                if not reference:
                    continue
                if not _is_passthrough(reference):
                    entry = self.inline(reference, document_path)
                    if entry is not None:
                        image[attr] = entry.data_uri
                        rewritten += 1
                break
        return rewritten
