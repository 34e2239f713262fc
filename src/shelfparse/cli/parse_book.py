"""CLI command that parses ebooks into markdown and reports a JSON summary."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from shelfparse.ingestion.config import ExtractionSettings
from shelfparse.ingestion.errors import ExtractionError
from shelfparse.ingestion.ingestor import DocumentIngestor, build_default_ingestor, format_from_filename
from shelfparse.ingestion.metadata import generate_book_path, handle_edition_conflict, slugify
from shelfparse.ingestion.models import ParsedDocument

LOGGER = logging.getLogger(__name__)


def _collect_inputs(target: Path) -> list[Path]:
    if target.is_file():
        return [target]
    if target.is_dir():
        return sorted(path for path in target.rglob("*") if path.is_file() and format_from_filename(path.name))
    return []


def _write_output(output_dir: Path, parsed: ParsedDocument, taken: set[str]) -> Path:
    relative = generate_book_path(parsed.metadata) if parsed.metadata is not None else "unknown-author/untitled"
    if relative in taken:
        relative = handle_edition_conflict(relative, taken)
    taken.add(relative)
    book_dir = output_dir / relative
    chapters_dir = book_dir / "chapters"
    chapters_dir.mkdir(parents=True, exist_ok=True)

    (book_dir / "book.md").write_text(parsed.markdown + "\n", encoding="utf-8")
    for chapter in parsed.chapters:
        name = f"{chapter.order + 1:03d}-{slugify(chapter.title) or 'chapter'}.md"
        (chapters_dir / name).write_text(f"# {chapter.title}\n\n{chapter.content}\n", encoding="utf-8")
    return book_dir


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Parse EPUB, PDF and MOBI books into normalized markdown")
    parser.add_argument("--path", required=True, help="Source file or directory")
    parser.add_argument("--format", choices=("epub", "pdf", "mobi"), help="Format tag; defaults to the file extension")
    parser.add_argument("--output-dir", help="Write book.md and per-chapter files under this directory")
    parser.add_argument("--env-file", help="Read SHELFPARSE_* settings from this .env file")
    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    source_path = Path(args.path)
    files = _collect_inputs(source_path)
    ingestor: DocumentIngestor = build_default_ingestor(ExtractionSettings.from_env())
    output_dir = Path(args.output_dir) if args.output_dir else None
    written: set[str] = set()

    results: list[dict[str, object]] = []
    errors: list[dict[str, str]] = []

    for file_path in files:
        try:
            parsed = ingestor.parse_path(file_path, args.format)
        except ExtractionError as exc:
            LOGGER.error("Failed to parse %s: %s", file_path, exc)
            errors.append({"source_path": str(file_path), "kind": exc.kind.value, "error": str(exc)})
            continue

        summary = {"source_path": str(file_path), **parsed.to_dict()}
        if output_dir is not None:
            summary["output_path"] = str(_write_output(output_dir, parsed, written))
        results.append(summary)

    payload = {
        "path": str(source_path),
        "processed": len(results),
        "results": results,
        "errors": errors,
    }
    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0 if not errors else 1


if __name__ == "__main__":
    raise SystemExit(main())
