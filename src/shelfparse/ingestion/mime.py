"""Magic-number sniffing for embedded images."""

from __future__ import annotations

import base64
import posixpath

DEFAULT_IMAGE_MIME = "image/jpeg"

_EXTENSION_MIME: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
}

_SVG_PROBE_BYTES = 200


def detect_signature(data: bytes) -> str | None:
    """Return the MIME type implied by the leading bytes, if any is recognised."""

    head = data[:12]
    if head.startswith(b"\x89PNG"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"GIF8"):
        return "image/gif"
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return "image/webp"
    if head.startswith(b"BM"):
        return "image/bmp"
    if head.startswith(b"II*\x00") or head.startswith(b"MM\x00*"):
        return "image/tiff"
    return None


def _looks_like_svg(data: bytes) -> bool:
    probe = data[:_SVG_PROBE_BYTES].decode("utf-8", errors="ignore")
    return "<?xml" in probe or "<svg" in probe


def _extension_of(hint: str) -> str:
    hint = hint.strip().lower()
    if "/" in hint or "." in hint:
        _, ext = posixpath.splitext(posixpath.basename(hint))
        if ext:
            return ext.lstrip(".")
        return hint.lstrip(".")
    return hint


def sniff_image_mime(data: bytes, extension: str | None = None) -> str:
    """Best-effort MIME type for image bytes.

    Byte signatures win over the caller's extension hint; the extension
    table is only consulted when nothing in the header is recognised.
    Never raises.
    """

    signature = detect_signature(data)
    if signature is not None:
        return signature
    if _looks_like_svg(data):
        return "image/svg+xml"
    if extension:
        mapped = _EXTENSION_MIME.get(_extension_of(extension))
        if mapped is not None:
            return mapped
    return DEFAULT_IMAGE_MIME


def to_data_uri(data: bytes, mime: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"
