from __future__ import annotations

import pytest

from shelfparse.ingestion.config import ExtractionSettings, HeadingThresholds


def test_defaults_without_environment() -> None:
    settings = ExtractionSettings.from_env({})

    assert settings == ExtractionSettings()
    assert settings.min_chapter_chars == 50
    assert settings.pdf_chunk_pages == 10
    assert settings.pdf_single_chapter_max_pages == 20
    assert settings.first_pages_chars == 5000
    assert settings.max_file_bytes == 50 * 1024 * 1024
    assert settings.heading_thresholds == HeadingThresholds()


def test_environment_overrides_are_parsed() -> None:
    settings = ExtractionSettings.from_env(
        {
            "SHELFPARSE_MIN_CHAPTER_CHARS": "0",
            "SHELFPARSE_PDF_CHUNK_PAGES": "5",
            "SHELFPARSE_PDF_HEADING_RATIOS": "3.0, 2.0, 1.5, 1.2",
            "SHELFPARSE_PDF_BOLD_BOOST": "1.25",
            "SHELFPARSE_PDF_SHAPE_HEADING_MAX_CHARS": "0",
            "SHELFPARSE_PDF_RENDER_COVER": "no",
            "SHELFPARSE_DETECT_LANGUAGE": "off",
            "SHELFPARSE_MAX_FILE_BYTES": "0",
        }
    )

    assert settings.min_chapter_chars == 0
    assert settings.pdf_chunk_pages == 5
    assert settings.heading_thresholds.h1 == 3.0
    assert settings.heading_thresholds.h4 == 1.2
    assert settings.heading_thresholds.bold_boost == 1.25
    assert settings.heading_thresholds.shape_max_chars == 0
    assert settings.render_pdf_cover is False
    assert settings.detect_language is False
    assert settings.max_file_bytes == 0


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("SHELFPARSE_PDF_CHUNK_PAGES", "0", "SHELFPARSE_PDF_CHUNK_PAGES must be >= 1"),
        ("SHELFPARSE_PDF_CHUNK_PAGES", "ten", "SHELFPARSE_PDF_CHUNK_PAGES must be an integer"),
        ("SHELFPARSE_PDF_PARAGRAPH_GAP_RATIO", "wide", "SHELFPARSE_PDF_PARAGRAPH_GAP_RATIO must be a number"),
        ("SHELFPARSE_PDF_HEADING_RATIOS", "2.0,1.5", "exactly four"),
        ("SHELFPARSE_PDF_HEADING_RATIOS", "1.0,1.5,1.3,1.1", "non-increasing"),
        ("SHELFPARSE_PDF_RENDER_COVER", "maybe", "SHELFPARSE_PDF_RENDER_COVER must be one of"),
        ("SHELFPARSE_FIRST_PAGES_CHARS", "  ", "cannot be empty"),
    ],
)
def test_invalid_values_name_the_variable(name: str, value: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        ExtractionSettings.from_env({name: value})


def test_heading_levels_follow_ratio_cutoffs() -> None:
    thresholds = HeadingThresholds()

    assert thresholds.level_for(2.5) == 1
    assert thresholds.level_for(2.0) == 1
    assert thresholds.level_for(1.7) == 2
    assert thresholds.level_for(1.3) == 3
    assert thresholds.level_for(1.2) == 4
    assert thresholds.level_for(1.0) is None
