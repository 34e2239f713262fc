"""Partial-success folding over per-item extraction steps."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, Generic, Iterable, TypeVar, Union

from shelfparse.ingestion.errors import ExtractionError

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ValueT = TypeVar("ValueT")


@dataclass(frozen=True, slots=True)
class Skipped:
    """An item that was dropped, with the reason it could not be used."""

    label: str
    reason: str


@dataclass(slots=True)
class FoldResult(Generic[ValueT]):
    values: list[ValueT] = field(default_factory=list)
    skipped: list[Skipped] = field(default_factory=list)


StepResult = Union[ValueT, Skipped, None]


def collect(
    items: Iterable[ItemT],
    step: Callable[[ItemT], "StepResult[ValueT]"],
    *,
    label: Callable[[ItemT], str] = str,
) -> FoldResult[ValueT]:
    """Apply ``step`` to each item in order, keeping successes and skips apart.

    ``step`` returns a value to keep, a ``Skipped`` record, or ``None`` for
    items that are filtered out silently. An exception raised by a single
    step is recorded as a skip so one broken item never aborts the fold.
    """

    result: FoldResult[ValueT] = FoldResult()
    for item in items:
        try:
            outcome = step(item)
        except ExtractionError:
            raise
        except Exception as exc:  # noqa: BLE001 - per-item isolation
            outcome = Skipped(label=label(item), reason=f"{type(exc).__name__}: {exc}")

        if outcome is None:
            continue
        if isinstance(outcome, Skipped):
            logger.warning("Skipping %s: %s", outcome.label, outcome.reason)
            result.skipped.append(outcome)
            continue
        result.values.append(outcome)
    return result
