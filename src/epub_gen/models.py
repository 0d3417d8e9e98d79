from __future__ import annotations

import html
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .exceptions import EpubGenError


class MediaType(Enum):
    """Resource kinds a package may hold: (MIME type, archive subdirectory)."""

    XHTML = ("application/xhtml+xml", "")
    NCX = ("application/x-dtbncx+xml", "")
    CSS = ("text/css", "styles")
    TTF = ("font/ttf", "fonts")
    OTF = ("font/otf", "fonts")
    WOFF = ("font/woff", "fonts")
    WOFF2 = ("font/woff2", "fonts")

    def __init__(self, mime: str, subdir: str):
        self.mime = mime
        self.subdir = subdir

    @property
    def is_font(self) -> bool:
        return self.subdir == "fonts"

    @classmethod
    def for_font(cls, filename: str) -> "MediaType":
        ext = os.path.splitext(filename)[1].lower()
        try:
            return _FONT_EXTENSIONS[ext]
        except KeyError:
            raise EpubGenError(f"Unsupported font format: {filename}") from None


_FONT_EXTENSIONS: Dict[str, MediaType] = {
    ".ttf": MediaType.TTF,
    ".otf": MediaType.OTF,
    ".woff": MediaType.WOFF,
    ".woff2": MediaType.WOFF2,
}


class Compression(Enum):
    STORED = "stored"
    DEFLATED = "deflated"


@dataclass(frozen=True)
class BookInfo:
    title: str
    description: str = ""
    publisher: str = ""
    author: str = ""
    toc_title: str = "Table of Contents"
    language: str = "en"
    date: Optional[str] = None
    append_chapter_titles: bool = True
    css: Optional[str] = None
    fonts: Tuple[str, ...] = ()
    version: int = 3
    direction: Optional[str] = None  # "ltr" | "rtl"
    rights: Optional[str] = None
    include_ncx: bool = False  # EPUB3 only: ship toc.ncx for EPUB2 readers
    nav_in_spine: bool = False

    def __post_init__(self):
        if self.version not in (2, 3):
            raise EpubGenError(f"Unsupported EPUB version: {self.version!r} (expected 2 or 3)")
        if self.direction not in (None, "ltr", "rtl"):
            raise EpubGenError(f"Unsupported text direction: {self.direction!r}")
        # A single family name is one font, not a sequence of letters
        fonts = (self.fonts,) if isinstance(self.fonts, str) else tuple(self.fonts)
        object.__setattr__(self, "fonts", fonts)

    @property
    def ships_ncx(self) -> bool:
        return self.version == 2 or self.include_ncx


@dataclass(frozen=True)
class Chapter:
    title: str
    body: str  # pre-rendered xhtml body fragment
    sections: Tuple[Tuple[str, str], ...] = ()  # (anchor id, title)

    @classmethod
    def from_paragraphs(cls, title: str, paragraphs: Iterable[str]) -> "Chapter":
        """Wrap plain-text paragraphs in escaped <p> elements."""
        body = "\n".join(f"<p>{html.escape(p, quote=False)}</p>" for p in paragraphs)
        return cls(title=title, body=body)


@dataclass(frozen=True)
class FontAsset:
    family: str
    filename: str
    data: bytes = field(repr=False)
    weight: str = "400"
    style: str = "normal"

    @property
    def media_type(self) -> MediaType:
        return MediaType.for_font(self.filename)


@dataclass(frozen=True)
class ManifestItem:
    id: str
    href: str  # relative to the package document
    media_type: MediaType
    is_nav: bool = False


@dataclass(frozen=True)
class SpineEntry:
    idref: str
    linear: bool = True


@dataclass(frozen=True)
class NavEntry:
    title: str
    idref: str
    href: str
    fragment: Optional[str] = None
    children: Tuple["NavEntry", ...] = ()

    @property
    def target(self) -> str:
        return f"{self.href}#{self.fragment}" if self.fragment else self.href


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    data: bytes = field(repr=False)
    compression: Compression = Compression.DEFLATED


@dataclass(frozen=True)
class Package:
    """Everything one assembly run produced, ready to be written."""

    book_id: str
    info: BookInfo
    manifest: Tuple[ManifestItem, ...]
    spine: Tuple[SpineEntry, ...]
    nav: Tuple[NavEntry, ...]
    entries: Tuple[ArchiveEntry, ...]

    def entry(self, path: str) -> ArchiveEntry:
        for e in self.entries:
            if e.path == path:
                return e
        raise KeyError(path)
