"""Resolution of references found inside a container to archive member paths."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import posixpath
from typing import Iterable
from urllib.parse import unquote

logger = logging.getLogger(__name__)

CONTENT_DIRS: tuple[str, ...] = ("OEBPS", "OPS", "EPUB", "content", "Content", "book", "Book")
IMAGE_DIRS: tuple[str, ...] = (
    "images",
    "Images",
    "image",
    "Image",
    "img",
    "Img",
    "media",
    "Media",
    "graphics",
    "Graphics",
    "pics",
    "Pics",
    "pictures",
    "Pictures",
    "assets",
    "Assets",
)


@dataclass(frozen=True, slots=True)
class ArchiveIndex:
    """Read-only lookup tables over one opened container."""

    filename_to_paths: dict[str, tuple[str, ...]]
    all_paths: frozenset[str]

    def __contains__(self, path: object) -> bool:
        return path in self.all_paths

    def __len__(self) -> int:
        return len(self.all_paths)

    def find_case_insensitive(self, path: str) -> str | None:
        """Return the member whose full path matches ``path`` ignoring case."""

        if path in self.all_paths:
            return path
        wanted = path.lower()
        for candidate in self.filename_to_paths.get(_filename_key(path), ()):
            if candidate.lower() == wanted:
                return candidate
        return None


def _filename_key(path: str) -> str:
    return unquote(posixpath.basename(path)).lower()


def build_archive_index(paths: Iterable[str]) -> ArchiveIndex:
    """Index member paths by bare lower-cased filename, keeping archive order."""

    by_name: dict[str, list[str]] = {}
    every: list[str] = []
    for path in paths:
        if not path or path.endswith("/"):
            continue
        every.append(path)
        by_name.setdefault(_filename_key(path), []).append(path)
    return ArchiveIndex(
        filename_to_paths={key: tuple(values) for key, values in by_name.items()},
        all_paths=frozenset(every),
    )


def clean_reference(reference: str) -> str:
    """URL-decode a markup reference and drop its query string and fragment."""

    cleaned = reference.strip()
    for marker in ("#", "?"):
        if marker in cleaned:
            cleaned = cleaned.split(marker, 1)[0]
    return unquote(cleaned)


def join_archive_path(base_dir: str, reference: str) -> str:
    """Join and normalize archive paths; ``..`` above the root stops at the root."""

    if reference.startswith("/"):
        segments: list[str] = []
    else:
        segments = [part for part in base_dir.split("/") if part]
    for part in reference.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if segments:
                segments.pop()
            continue
        segments.append(part)
    return "/".join(segments)


def _strip_relative_prefix(reference: str) -> str:
    stripped = reference
    while True:
        if stripped.startswith("../"):
            stripped = stripped[3:]
        elif stripped.startswith("./"):
            stripped = stripped[2:]
        elif stripped.startswith("/"):
            stripped = stripped[1:]
        else:
            return stripped


def candidate_paths(reference: str, referencing_path: str, package_dir: str = "") -> list[str]:
    """Ordered, de-duplicated archive paths a reference may point at."""

    cleaned = clean_reference(reference)
    if not cleaned:
        return []

    referencing_dir = posixpath.dirname(referencing_path)
    bare = _strip_relative_prefix(cleaned)
    filename = posixpath.basename(bare)

    ordered: list[str] = [join_archive_path(referencing_dir, cleaned), cleaned]
    for variant in (cleaned, bare):
        ordered.append(variant.lstrip("/"))
        ordered.append("/" + variant.lstrip("/"))

    for content_dir in CONTENT_DIRS:
        ordered.append(f"{content_dir}/{bare}")

    if filename:
        for image_dir in IMAGE_DIRS:
            ordered.append(f"{image_dir}/{filename}")
        for content_dir in CONTENT_DIRS:
            for image_dir in IMAGE_DIRS:
                ordered.append(f"{content_dir}/{image_dir}/{filename}")

    if package_dir:
        ordered.append(join_archive_path(package_dir, bare))
        if filename:
            ordered.append(join_archive_path(package_dir, filename))
            for image_dir in IMAGE_DIRS:
                ordered.append(join_archive_path(package_dir, f"{image_dir}/{filename}"))

    seen: set[str] = set()
    unique: list[str] = []
    for path in ordered:
        if path and path not in seen:
            seen.add(path)
            unique.append(path)
    return unique


def _shared_prefix_depth(left: str, right: str) -> int:
    depth = 0
    for left_part, right_part in zip(left.split("/"), right.split("/")):
        if left_part != right_part:
            break
        depth += 1
    return depth


def resolve_archive_path(
    reference: str,
    referencing_path: str,
    index: ArchiveIndex,
    package_dir: str = "",
) -> str | None:
    """Resolve a markup reference to one archive member, or ``None``.

    Exact candidates are tried first; otherwise the bare filename is looked
    up case-insensitively and ties are broken by the longest run of leading
    directory segments shared with the referencing document.
    """

    for candidate in candidate_paths(reference, referencing_path, package_dir):
        if candidate in index.all_paths:
            return candidate

    cleaned = clean_reference(reference)
    if not cleaned:
        return None
    matches = index.filename_to_paths.get(_filename_key(cleaned), ())
    if not matches:
        logger.debug("No archive member for reference %r from %s", reference, referencing_path)
        return None
    if len(matches) == 1:
        return matches[0]

    referencing_dir = posixpath.dirname(referencing_path)
    best = matches[0]
    best_score = -1
    for match in matches:
        score = _shared_prefix_depth(referencing_dir, posixpath.dirname(match))
        if score > best_score:
            best = match
            best_score = score
    return best
