"""Repair pass for pipe tables and block spacing in converted markdown.

HTML to markdown conversion splits table cells that contain block
elements across several lines. ``reconstruct_tables`` stitches those
rows back together and normalizes blank lines around tables and
headings. It is a line heuristic rather than a markdown parser, and it is
idempotent: running it on its own output returns the same text.
"""

from __future__ import annotations

import re

DEFAULT_LOOKAHEAD = 30

_PIPE_RE = re.compile(r"(?<!\\)\|")
_SEPARATOR_RE = re.compile(r"^\|\s*[-:]+\s*(\|\s*[-:]+\s*)*\|$")
_FENCE_RE = re.compile(r"^(```|~~~)")
_HEADING_RE = re.compile(r"^#{1,6}(?:\s|$)")
_SPACE_RUN_RE = re.compile(r"\s{2,}")
_EXCESS_NEWLINES_RE = re.compile(r"\n{4,}")
_MIN_TABLE_PIPES = 3


def pipe_count(line: str) -> int:
    return len(_PIPE_RE.findall(line))


def is_row_shaped(line: str) -> bool:
    stripped = line.strip()
    return len(stripped) >= 2 and stripped.startswith("|") and stripped.endswith("|")


def is_separator(line: str) -> bool:
    return _SEPARATOR_RE.match(line.strip()) is not None


def _is_fence(line: str) -> bool:
    return _FENCE_RE.match(line.strip()) is not None


def _is_heading(line: str) -> bool:
    return _HEADING_RE.match(line.strip()) is not None


def _is_blank(line: str) -> bool:
    return not line.strip()


def _clean_row(line: str) -> str:
    return _SPACE_RUN_RE.sub(" ", line.strip())


def _starts_table(line: str) -> bool:
    return is_row_shaped(line) and pipe_count(line) >= _MIN_TABLE_PIPES


def _merge_split_row(lines: list[str], start: int, expected: int, lookahead: int) -> tuple[str, int] | None:
    """Join a short row with following lines until it has ``expected`` pipes.

    Returns the merged row and the index of the first unconsumed line, or
    ``None`` when no exact, well-formed row can be assembled.
    """

    merged = lines[start].strip()
    limit = min(len(lines), start + 1 + lookahead)
    index = start + 1
    while index < limit:
        candidate = lines[index]
        if _is_fence(candidate):
            break
        index += 1
        piece = candidate.strip()
        if not piece:
            continue
        merged = f"{merged} {piece}"
        if pipe_count(merged) >= expected:
            break

    if pipe_count(merged) == expected and is_row_shaped(merged):
        return _clean_row(merged), index
    return None


def _repair_rows(lines: list[str], lookahead: int) -> list[str]:
    out: list[str] = []
    in_fence = False
    in_table = False
    expected = 0
    table_start = 0

    index = 0
    while index < len(lines):
        line = lines[index]

        if in_fence:
            out.append(line)
            if _is_fence(line):
                in_fence = False
            index += 1
            continue

        if in_table:
            if _is_blank(line):
                in_table = False
                out.append("")
                index += 1
                continue
            if _is_fence(line):
                in_table = False
                out.append("")
                continue

            count = pipe_count(line)
            if count == 0:
                # stray cell-wrap continuation
                index += 1
                continue

            if is_separator(line):
                row = _clean_row(line)
                if count < expected:
                    row += " --- |" * (expected - count)
                elif count > expected:
                    for position in range(table_start, len(out)):
                        out[position] += " |" * (count - expected)
                    expected = count
                out.append(row)
                index += 1
                continue

            if count == expected and is_row_shaped(line):
                out.append(_clean_row(line))
                index += 1
                continue

            if count < expected:
                merged = _merge_split_row(lines, index, expected, lookahead)
                if merged is not None:
                    row, index = merged
                    out.append(row)
                    continue

            in_table = False
            out.append("")
            continue

        if _is_fence(line):
            in_fence = True
            out.append(line)
            index += 1
            continue

        if _starts_table(line):
            if out and out[-1].strip():
                out.append("")
            in_table = True
            expected = pipe_count(line)
            table_start = len(out)
            out.append(_clean_row(line))
            index += 1
            continue

        out.append("" if _is_blank(line) else line)
        index += 1

    return out


def _block_kind(line: str) -> str:
    if is_row_shaped(line):
        return "table"
    if _is_heading(line):
        return "heading"
    return "text"


def _normalize_spacing(lines: list[str]) -> list[str]:
    out: list[str] = []
    in_fence = False
    previous_kind = "text"

    for line in lines:
        if in_fence:
            out.append(line)
            if _is_fence(line):
                in_fence = False
                previous_kind = "text"
            continue

        if _is_blank(line):
            if out and out[-1] != "":
                out.append("")
            continue

        if _is_fence(line):
            kind = "text"
            in_fence = True
        else:
            kind = _block_kind(line)

        if out and out[-1] != "":
            crosses_table = (kind == "table") != (previous_kind == "table")
            touches_heading = kind == "heading" or previous_kind == "heading"
            if crosses_table or touches_heading:
                out.append("")

        out.append(line)
        previous_kind = kind

    return out


def reconstruct_tables(markdown: str, *, lookahead: int = DEFAULT_LOOKAHEAD) -> str:
    """Merge split table rows and normalize block spacing."""

    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")
    repaired = _repair_rows(lines, lookahead)
    spaced = _normalize_spacing(repaired)
    joined = "\n".join(spaced)
    return _EXCESS_NEWLINES_RE.sub("\n\n\n", joined).strip()
