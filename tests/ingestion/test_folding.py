from __future__ import annotations

import logging

import pytest

from shelfparse.ingestion.errors import StructuralError
from shelfparse.ingestion.folding import Skipped, collect


def _step(value: int) -> int | Skipped | None:
    if value == 0:
        return None
    if value < 0:
        return Skipped(f"item {value}", "negative")
    if value == 13:
        raise ValueError("unlucky")
    return value * 10


def test_collect_separates_values_and_skips_in_order(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        result = collect([1, 0, -2, 13, 3], _step, label=lambda value: f"item {value}")

    assert result.values == [10, 30]
    assert result.skipped == [
        Skipped("item -2", "negative"),
        Skipped("item 13", "ValueError: unlucky"),
    ]
    assert "Skipping item 13" in caplog.text


def test_extraction_errors_abort_the_fold() -> None:
    def step(value: int) -> int:
        raise StructuralError("broken container", "book.epub")

    with pytest.raises(StructuralError):
        collect([1, 2], step)
