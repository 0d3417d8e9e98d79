from __future__ import annotations

"""Thin CLI: build an EPUB from a JSON book description.

The JSON file holds an ``info`` object (BookInfo fields, plus an optional
``css_file``), a ``chapters`` list (``title`` and either ``body`` or
``paragraphs``, optional ``sections`` as ``[anchor, title]`` pairs) and an
optional ``font_files`` list. Relative paths resolve against the JSON file.
"""

from typing import Any, Dict, List, Optional
import argparse
import json
import logging
import os
import sys

from .api import BuildEvent, build_epub
from .assets import load_font
from .exceptions import EpubGenError
from .models import BookInfo, Chapter
from .utils import make_title_filename

_INFO_FIELDS = {
    "title", "description", "publisher", "author", "toc_title", "language", "date",
    "append_chapter_titles", "css", "fonts", "version", "direction", "rights",
    "include_ncx", "nav_in_spine",
}


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return fh.read()
    except OSError as e:
        raise EpubGenError(f"Cannot read {path}: {e}") from e


def load_book(path: str) -> Dict[str, Any]:
    """Parse a JSON book description into BookInfo, chapters and fonts."""
    try:
        data = json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        raise EpubGenError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EpubGenError(f"{path} must hold a JSON object")
    base = os.path.dirname(os.path.abspath(path))

    raw_info = data.get("info") or {}
    if not isinstance(raw_info, dict):
        raise EpubGenError("info must be a JSON object")
    raw_info = dict(raw_info)
    css_file = raw_info.pop("css_file", None)
    unknown = set(raw_info) - _INFO_FIELDS
    if unknown:
        raise EpubGenError(f"Unknown info field(s): {', '.join(sorted(unknown))}")
    if "title" not in raw_info:
        raise EpubGenError("info.title is required")
    if css_file:
        raw_info["css"] = _read_text(os.path.join(base, css_file))
    info = BookInfo(**raw_info)

    chapters: List[Chapter] = []
    for pos, raw in enumerate(data.get("chapters") or [], 1):
        if not isinstance(raw, dict):
            raise EpubGenError(f"Chapter {pos} must be a JSON object")
        title = raw.get("title", "")
        if "paragraphs" in raw:
            ch = Chapter.from_paragraphs(title, raw["paragraphs"])
        elif "body" in raw:
            ch = Chapter(title=title, body=raw["body"])
        else:
            raise EpubGenError(f"Chapter {pos} needs 'body' or 'paragraphs'")
        sections = tuple((str(a), str(t)) for a, t in raw.get("sections") or [])
        if sections:
            ch = Chapter(title=ch.title, body=ch.body, sections=sections)
        chapters.append(ch)

    fonts = [load_font(os.path.join(base, p)) for p in data.get("font_files") or []]
    return {"info": info, "chapters": chapters, "fonts": fonts}


def main(argv: Optional[List[str]] = None) -> int:  # pragma: no cover
    ap = argparse.ArgumentParser(description="Build an EPUB package from a JSON book description")
    ap.add_argument("book", help="Path to the book JSON file")
    ap.add_argument("-o", "--output", help="Output EPUB path (default: <book title>.epub)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log debug details to stderr")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        book = load_book(args.book)
        out_path = args.output or make_title_filename(book["info"].title) + ".epub"

        def on_event(ev: BuildEvent) -> None:
            t = ev.get("type")
            if t == "chapter_rendered":
                print(f"[ {ev.get('index'):04d} ] {ev.get('id')} {ev.get('title')}")

        build_epub(book["info"], book["chapters"], out_path, fonts=book["fonts"], on_event=on_event)
        print(f"[✓] Wrote {out_path}")
        return 0
    except EpubGenError as e:
        print(f"[!] {e}", file=sys.stderr)
        return 2
