from __future__ import annotations

import pytest

from shelfparse.ingestion.metadata import (
    RawMetadata,
    build_metadata,
    enrich_from_text,
    extract_language,
    extract_publication_info_from_text,
    extract_year,
    generate_book_path,
    handle_edition_conflict,
    normalize_author,
    normalize_title,
    slugify,
    validate_isbn,
)


def test_slugs_drop_diacritics_and_punctuation() -> None:
    assert slugify("Gabriel García Márquez") == "gabriel-garcia-marquez"
    assert slugify("  The  Hitchhiker's Guide: Vol. 2 ") == "the-hitchhikers-guide-vol-2"


def test_author_and_title_normalization() -> None:
    assert normalize_author("Jane Doe, John Roe") == "jane-doe-and-others"
    assert normalize_author("Jane Doe") == "jane-doe"
    assert normalize_author(None) == "unknown-author"
    assert normalize_title("") == "untitled"
    assert normalize_title("War & Peace") == "war-peace"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("978-0-306-40615-7", "9780306406157"),
        ("urn:isbn:9780306406157", "9780306406157"),
        ("ISBN 0-306-40615-2", "0306406152"),
        ("080442957x", "080442957X"),
        ("978-0-306-40615-8", None),
        ("0-306-40615-3", None),
        ("12345", None),
        (None, None),
    ],
)
def test_isbn_check_digits(raw: str | None, expected: str | None) -> None:
    assert validate_isbn(raw) == expected


def test_year_and_language_extraction() -> None:
    assert extract_year("2019-04-01T00:00:00Z") == 2019
    assert extract_year("D:19990102") is None
    assert extract_year(1999) == 1999
    assert extract_year("printed in 1850") is None
    assert extract_language("en-GB") == "en"
    assert extract_language("fre") == "fr"
    assert extract_language("Deutsch") == "de"
    assert extract_language("klingon") is None


def test_build_metadata_canonicalizes_raw_fields() -> None:
    metadata = build_metadata(
        "The Sample",
        "Jane Doe",
        RawMetadata(
            identifiers=["uuid:1234", "urn:isbn:9780306406157"],
            publisher="  Example   Press ",
            date="2019-04-01",
            language="EN-us",
            description=" A book. ",
            subjects="Fiction; Mystery, Fiction",
            page_count=12,
            file_size=2048,
        ),
    )

    assert metadata.isbn == "9780306406157"
    assert metadata.publisher == "Example Press"
    assert metadata.publication_year == 2019
    assert metadata.language == "en"
    assert metadata.description == "A book."
    assert metadata.subjects == ["Fiction", "Mystery"]
    assert metadata.page_count == 12
    assert metadata.file_size == 2048
    assert generate_book_path(metadata) == "jane-doe/the-sample"


def test_edition_conflicts_use_ordinal_suffixes() -> None:
    base = "jane-doe/the-sample"

    assert handle_edition_conflict(base, {base}) == f"{base}-2nd-ed"
    assert handle_edition_conflict(base, {base, f"{base}-2nd-ed"}) == f"{base}-3rd-ed"
    taken = {base} | {f"{base}-{suffix}-ed" for suffix in ("2nd", "3rd", "4th", "5th", "6th", "7th", "8th", "9th", "10th")}
    assert handle_edition_conflict(base, taken) == f"{base}-11th-ed"


def test_front_matter_publication_info() -> None:
    text = "Copyright © 2015 by Example House\nAll rights reserved.\nISBN 978-0-306-40615-7\n"

    info = extract_publication_info_from_text(text)

    assert info.isbn == "9780306406157"
    assert info.publisher == "Example House"
    assert info.publication_year == 2015
    assert extract_publication_info_from_text(text, max_year=2010).publication_year is None


def test_enrichment_only_fills_gaps() -> None:
    metadata = build_metadata("Title", None, RawMetadata(publisher="Original Publisher"))

    enrich_from_text(metadata, "Published by Someone Else\nCopyright 2001\nISBN 0-306-40615-2")

    assert metadata.publisher == "Original Publisher"
    assert metadata.publication_year == 2001
    assert metadata.isbn == "0306406152"
