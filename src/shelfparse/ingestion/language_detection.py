"""Language detection for books whose container carries no language tag."""

from __future__ import annotations

from functools import lru_cache
import logging

logger = logging.getLogger(__name__)

_DETECTED_LANGUAGES = (
    "ENGLISH",
    "FRENCH",
    "SPANISH",
    "GERMAN",
    "ITALIAN",
    "PORTUGUESE",
    "RUSSIAN",
    "CHINESE",
    "JAPANESE",
    "KOREAN",
)
_MIN_SAMPLE_CHARS = 40


@lru_cache(maxsize=1)
def _get_detector():
    try:
        from lingua import Language, LanguageDetectorBuilder
    except ImportError:
        logger.warning("Language detection unavailable: install 'lingua-language-detector'")
        return None

    languages = [getattr(Language, name) for name in _DETECTED_LANGUAGES]
    return (
        LanguageDetectorBuilder.from_languages(*languages)
        .with_minimum_relative_distance(0.1)
        .build()
    )


def detect_language(text: str, *, sample_chars: int = 3000) -> str | None:
    """Return an ISO 639-1 code for *text*, or ``None`` when unsure.

    Only the first *sample_chars* characters are inspected.
    """
    sample = text[:sample_chars].strip() if text else ""
    if len(sample) < _MIN_SAMPLE_CHARS:
        return None

    detector = _get_detector()
    if detector is None:
        return None

    result = detector.detect_language_of(sample)
    if result is None:
        return None
    return result.iso_code_639_1.name.lower()
