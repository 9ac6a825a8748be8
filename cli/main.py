"""Lesson reader CLI — run the lesson content pipeline from a terminal.

Usage:
    python cli/main.py --help

Commands:
    fetch     → fetch, extract, rewrite, sanitize and print one lesson
    sanitize  → run the extractor / sanitizer on a local HTML file
    doc-id    → print the Google Doc id a link resolves to
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that
# `from lesson_reader.xxx import ...` works when the CLI is invoked as
# `python cli/main.py` from any working directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
import logging
from typing import List, Optional

import typer

from lesson_reader.config import settings
from lesson_reader.content import (
    LessonContentService,
    LessonSource,
    extract_doc_id_from_url,
    extract_lesson_html,
    sanitize_lesson_html,
)
from lesson_reader.errors import LessonContentError

app = typer.Typer(
    name="lesson-reader",
    help="Lesson reader content pipeline CLI.",
    no_args_is_help=True,
)


def _parse_doc_map(entries: List[str]) -> dict:
    doc_id_map = {}
    for entry in entries:
        doc_id, sep, slug = entry.partition("=")
        if not sep or not doc_id or not slug:
            raise typer.BadParameter(f"Expected DOC_ID=SLUG, got {entry!r}", param_hint="--map")
        doc_id_map[doc_id] = slug
    return doc_id_map


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    logging.basicConfig(
        level="DEBUG" if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("fetch")
def fetch(
    lesson_id: str = typer.Argument(..., help="Lesson id used as the cache key."),
    url: str = typer.Argument(..., help="Published Google Doc URL."),
    bypass_cache: bool = typer.Option(False, "--bypass-cache", help="Skip the cache read."),
    doc_map: Optional[List[str]] = typer.Option(
        None, "--map", help="DOC_ID=SLUG pair for link rewriting (repeatable)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Run the full pipeline for one lesson and print the sanitized HTML."""
    doc_id_map = _parse_doc_map(doc_map or [])
    service = LessonContentService()
    lesson = LessonSource(id=lesson_id, published_url=url)

    try:
        result = asyncio.run(
            service.fetch_lesson_content(
                lesson,
                bypass_cache=bypass_cache,
                doc_id_map=doc_id_map or None,
                log_errors=False,
            )
        )
    except LessonContentError as exc:
        typer.echo(f"❌ Error: {exc}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo(result.html)


@app.command("sanitize")
def sanitize(
    path: Path = typer.Argument(..., help="Local HTML file."),
    extract: bool = typer.Option(
        False, "--extract", help="Run the document extractor before sanitizing."
    ),
) -> None:
    """Sanitize a local HTML file (optionally extracting the lesson body first)."""
    if not path.is_file():
        typer.echo(f"❌ Error: file not found: {path}", err=True)
        raise typer.Exit(code=1)

    html = path.read_text(encoding="utf-8")
    if extract:
        html = extract_lesson_html(html)
    typer.echo(sanitize_lesson_html(html))


@app.command("doc-id")
def doc_id(
    url: str = typer.Argument(..., help="Document, Drive or google.com/url link."),
) -> None:
    """Print the Google Doc id a link points to."""
    resolved = extract_doc_id_from_url(url)
    if not resolved:
        typer.echo(f"❌ Not a lesson document link: {url}", err=True)
        raise typer.Exit(code=1)
    typer.echo(resolved)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
