from __future__ import annotations

import pytest

from shelfparse.ingestion.errors import StructuralError
from shelfparse.ingestion.packaging import ContainerLayout, locate_package, parse_ncx, parse_package

_CONTAINER_NS = 'xmlns="urn:oasis:names:tc:opendocument:xmlns:container"'

_OPF = b"""<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" xmlns:opf="http://www.idpf.org/2007/opf" version="2.0">
  <opf:metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>The Sample</dc:title>
    <dc:creator>Jane Doe</dc:creator>
    <dc:creator>John Roe</dc:creator>
    <dc:identifier opf:scheme="ISBN">978-0-306-40615-7</dc:identifier>
    <dc:publisher>Example Press</dc:publisher>
    <dc:date>2019-04-01</dc:date>
    <dc:language>en-GB</dc:language>
    <dc:description>&lt;p&gt;A &lt;b&gt;short&lt;/b&gt; book.&lt;/p&gt;</dc:description>
    <dc:subject>Fiction</dc:subject>
    <dc:subject>Fiction</dc:subject>
    <dc:subject>Mystery</dc:subject>
    <meta name="cover" content="cover-img"/>
  </opf:metadata>
  <manifest>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="c1" href="Text/chapter%201.xhtml" media-type="application/xhtml+xml"/>
    <item id="c2" href="Text/chapter2.xhtml" media-type="application/xhtml+xml"/>
    <item id="cover-img" href="Images/front.jpg" media-type="image/jpeg"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="c1"/>
    <itemref idref="c2" linear="no"/>
  </spine>
</package>
"""


@pytest.mark.parametrize(
    ("xml", "layout"),
    [
        (
            f'<container {_CONTAINER_NS}><rootfiles><rootfile full-path="OEBPS/content.opf" '
            'media-type="application/oebps-package+xml"/></rootfiles></container>',
            ContainerLayout.ROOTFILES,
        ),
        (
            f'<container {_CONTAINER_NS}><rootfile full-path="OEBPS/content.opf"/></container>',
            ContainerLayout.DIRECT_ROOTFILE,
        ),
        (
            '<wrapper><inner><rootfiles><rootfile full-path="OEBPS/content.opf"/></rootfiles></inner></wrapper>',
            ContainerLayout.NESTED_ROOTFILES,
        ),
        (
            '<odd><entry><pkg full-path="OEBPS/content.opf"/></entry></odd>',
            ContainerLayout.SEARCH,
        ),
    ],
)
def test_container_layout_variants(xml: str, layout: ContainerLayout) -> None:
    match = locate_package(xml.encode("utf-8"))

    assert match.layout is layout
    assert match.package_path == "OEBPS/content.opf"


def test_container_prefers_opf_media_type() -> None:
    xml = (
        f'<container {_CONTAINER_NS}><rootfiles>'
        '<rootfile full-path="alt/rendition.pdf" media-type="application/pdf"/>'
        '<rootfile full-path="OPS/package.opf" media-type="application/oebps-package+xml"/>'
        "</rootfiles></container>"
    ).encode("utf-8")

    assert locate_package(xml).package_path == "OPS/package.opf"


def test_container_without_package_reference_is_structural() -> None:
    with pytest.raises(StructuralError):
        locate_package(b"<container><rootfiles/></container>")
    with pytest.raises(StructuralError):
        locate_package(b"")


def test_package_manifest_spine_and_metadata() -> None:
    package = parse_package(_OPF, "OEBPS/content.opf")

    assert package.package_dir == "OEBPS"
    assert package.spine == ["c1", "c2"]
    assert package.toc_id == "ncx"
    assert package.manifest["c1"].is_document
    assert package.href_to_path(package.manifest["c1"].href) == "OEBPS/Text/chapter 1.xhtml"

    meta = package.read_metadata()
    assert meta.title == "The Sample"
    assert meta.author == "Jane Doe, John Roe"
    assert meta.isbn == "978-0-306-40615-7"
    assert meta.publisher == "Example Press"
    assert meta.language == "en-GB"
    assert meta.description == "A short book."
    assert meta.subjects == ["Fiction", "Mystery"]

    cover = package.cover_item(meta.cover_id)
    assert cover is not None
    assert cover.href == "Images/front.jpg"


@pytest.mark.parametrize(
    ("xml", "message"),
    [
        (b"<package><manifest/><spine><itemref idref='a'/></spine></package>", "metadata"),
        (b"<package><metadata/><spine><itemref idref='a'/></spine></package>", "manifest"),
        (b"<package><metadata/><manifest/></package>", "spine"),
        (b"<package><metadata/><manifest/><spine/></package>", "spine"),
    ],
)
def test_missing_package_sections_are_structural(xml: bytes, message: str) -> None:
    with pytest.raises(StructuralError) as excinfo:
        parse_package(xml, "content.opf", "book.epub")

    assert message in str(excinfo.value)
    assert "book.epub" in str(excinfo.value)


def test_ncx_is_flattened_in_document_order() -> None:
    ncx = b"""<?xml version="1.0"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/">
  <navMap>
    <navPoint id="p1"><navLabel><text>Part One</text></navLabel><content src="book.html#a"/>
      <navPoint id="p1-1"><navLabel><text>Chapter 1</text></navLabel><content src="book.html#b"/></navPoint>
    </navPoint>
    <navPoint id="p2"><navLabel><text>Part Two</text></navLabel><content src="book.html#c"/></navPoint>
  </navMap>
</ncx>"""

    entries = parse_ncx(ncx)

    assert [(entry.title, entry.href, entry.level) for entry in entries] == [
        ("Part One", "book.html#a", 1),
        ("Chapter 1", "book.html#b", 2),
        ("Part Two", "book.html#c", 1),
    ]
