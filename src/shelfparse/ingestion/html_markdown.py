"""HTML to markdown conversion used by the EPUB and MOBI extractors."""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag
from charset_normalizer import from_bytes
from markdownify import ATX, MarkdownConverter, chomp

_INTERNAL_SUFFIXES = (".xhtml", ".html", ".htm")
_EXTERNAL_PREFIXES = ("http://", "https://", "mailto:", "ftp://", "//")


def _attr(el: Tag, name: str) -> str:
    value = el.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _title_part(title: str) -> str:
    if not title:
        return ""
    escaped = title.replace('"', '\\"')
    return f' "{escaped}"'


def _is_internal_link(href: str) -> bool:
    lowered = href.lower()
    if lowered.startswith(_EXTERNAL_PREFIXES):
        return False
    if lowered.startswith("#"):
        return True
    path = lowered.split("#", 1)[0]
    return path.endswith(_INTERNAL_SUFFIXES)


class BookMarkdownConverter(MarkdownConverter):
    """markdownify converter with ebook-specific image, link and paragraph rules."""

    class Options(MarkdownConverter.DefaultOptions):
        bs4_options = "lxml"
        bullets = "-"
        heading_style = ATX
        strong_em_symbol = "*"
        table_infer_header = True

    def _image_markup(self, src: str, alt: str, title: str, parent_tags: set[str]) -> str:
        if not src:
            return ""
        alt = " ".join(alt.split())
        markup = f"![{alt}]({src}{_title_part(title)})"
        if "_inline" in parent_tags:
            return markup
        return f"\n\n{markup}\n\n"

    def convert_img(self, el, text, parent_tags):
        return self._image_markup(_attr(el, "src"), _attr(el, "alt"), _attr(el, "title"), parent_tags)

    def convert_image(self, el, text, parent_tags):
        # SVG wrappers (<svg><image xlink:href=...>) used for full-page art
        src = _attr(el, "xlink:href") or _attr(el, "href") or _attr(el, "src")
        return self._image_markup(src, "", "", parent_tags)

    def convert_p(self, el, text, parent_tags):
        text = text.replace("\xa0", " ").strip()
        if "_inline" in parent_tags:
            return f" {text} " if text else ""
        return f"\n\n{text}\n\n" if text else ""

    def convert_a(self, el, text, parent_tags):
        if "_noformat" in parent_tags:
            return text
        prefix, suffix, text = chomp(text)
        if not text:
            return ""

        href = _attr(el, "href")
        if not href:
            return f"{prefix}{text}{suffix}"

        if _is_internal_link(href):
            fragment = href.split("#", 1)[1] if "#" in href else ""
            if fragment:
                return f'{prefix}<a href="#{fragment}">{text}</a>{suffix}'
            return f"{prefix}{text}{suffix}"

        return f"{prefix}[{text}]({href}{_title_part(_attr(el, 'title'))}){suffix}"


def body_to_markdown(soup: BeautifulSoup | Tag) -> str:
    """Convert the ``body`` of a parsed document (or the node itself) to markdown."""

    node = soup.body if isinstance(soup, BeautifulSoup) and soup.body is not None else soup
    converter = BookMarkdownConverter()
    if isinstance(node, BeautifulSoup):
        return converter.convert_soup(node).strip()
    return converter.process_tag(node, parent_tags=set()).strip()


def html_to_markdown(html: str) -> str:
    return body_to_markdown(BeautifulSoup(html, "lxml"))


def decode_markup(data: bytes) -> str:
    """Decode a markup document, falling back to charset detection for legacy encodings."""

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        best = from_bytes(data).best()
        if best is not None:
            return str(best)
        return data.decode("utf-8", errors="replace")
