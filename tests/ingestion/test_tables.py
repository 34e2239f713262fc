from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from shelfparse.ingestion.tables import is_separator, pipe_count, reconstruct_tables

_WORDS = st.text(alphabet="abcdefghij", min_size=1, max_size=6)


@st.composite
def _split_tables(draw) -> tuple[str, int]:
    columns = draw(st.integers(min_value=2, max_value=5))
    header = "| " + " | ".join(draw(_WORDS) for _ in range(columns)) + " |"
    separator = "| " + " | ".join("---" for _ in range(columns)) + " |"
    rows = [header, separator]
    for _ in range(draw(st.integers(min_value=1, max_value=6))):
        cells = [f"{draw(_WORDS)} {draw(_WORDS)}" for _ in range(columns)]
        if draw(st.booleans()):
            # a block element inside the cell broke the row across lines
            broken = draw(st.integers(min_value=0, max_value=columns - 1))
            cells[broken] = cells[broken].replace(" ", "\n", 1)
        rows.append("| " + " | ".join(cells) + " |")
    return "\n".join(rows), columns + 1


@given(st.text(alphabet="|-: ab#`\n", max_size=300))
def test_reconstruction_is_idempotent(markdown: str) -> None:
    once = reconstruct_tables(markdown)

    assert reconstruct_tables(once) == once


@given(_split_tables())
def test_split_rows_are_rejoined_to_the_separator_width(case: tuple[str, int]) -> None:
    markdown, pipes = case

    rebuilt = reconstruct_tables(markdown)
    table_lines = [line for line in rebuilt.split("\n") if line.startswith("|")]

    assert table_lines
    assert sum(1 for line in table_lines if is_separator(line)) == 1
    assert all(pipe_count(line) == pipes for line in table_lines)


def test_split_cell_is_merged_and_table_is_spaced() -> None:
    markdown = "\n".join(
        [
            "Intro text",
            "| Name | Notes |",
            "| --- | --- |",
            "| Alpha | first",
            "line |",
            "| Beta | second |",
            "",
            "# Next",
        ]
    )

    assert reconstruct_tables(markdown) == (
        "Intro text\n"
        "\n"
        "| Name | Notes |\n"
        "| --- | --- |\n"
        "| Alpha | first line |\n"
        "| Beta | second |\n"
        "\n"
        "# Next"
    )


def test_short_separator_is_padded_to_header_width() -> None:
    markdown = "| a | b | c |\n| --- | --- |\n| 1 | 2 | 3 |"

    assert reconstruct_tables(markdown) == "| a | b | c |\n| --- | --- | --- |\n| 1 | 2 | 3 |"


def test_headings_get_blank_lines_and_blank_runs_collapse() -> None:
    markdown = "\n\ntext\n# Heading\nmore\n\n\n\nend\n"

    assert reconstruct_tables(markdown) == "text\n\n# Heading\n\nmore\n\nend"


def test_fenced_code_is_left_alone() -> None:
    markdown = "```\n| a | b |\n| c\n```"

    assert reconstruct_tables(markdown) == markdown


def test_escaped_pipes_do_not_count() -> None:
    assert pipe_count(r"| a \| b | c |") == 3
    assert is_separator("| :--- | ---: |")
    assert not is_separator("| a | --- |")
