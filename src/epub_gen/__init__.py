"""epub_gen public API (library-first).

Turns a BookInfo and an ordered list of chapters into an EPUB package. The CLI
is thin and delegates to `assemble`/`build_epub`.
"""
from __future__ import annotations

from .api import BuildEvent, assemble, build_epub
from .assets import build_stylesheet, font_from_bytes, load_font
from .container import archive_bytes, write_archive
from .content import check_fragment, render_chapter
from .exceptions import (
    DanglingReference,
    DuplicateIdentifier,
    EmptyPackage,
    EpubGenError,
    IOFailure,
    MalformedFragment,
)
from .ids import IdentifierAllocator
from .models import (
    ArchiveEntry,
    BookInfo,
    Chapter,
    Compression,
    FontAsset,
    ManifestItem,
    MediaType,
    NavEntry,
    Package,
    SpineEntry,
)

__all__ = [
    "BuildEvent",
    "assemble",
    "build_epub",
    "build_stylesheet",
    "font_from_bytes",
    "load_font",
    "archive_bytes",
    "write_archive",
    "check_fragment",
    "render_chapter",
    "DanglingReference",
    "DuplicateIdentifier",
    "EmptyPackage",
    "EpubGenError",
    "IOFailure",
    "MalformedFragment",
    "IdentifierAllocator",
    "ArchiveEntry",
    "BookInfo",
    "Chapter",
    "Compression",
    "FontAsset",
    "ManifestItem",
    "MediaType",
    "NavEntry",
    "Package",
    "SpineEntry",
]
