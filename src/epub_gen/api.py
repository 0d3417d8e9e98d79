from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Sequence

from .assets import build_stylesheet
from .container import archive_entries, write_archive
from .content import check_fragment, render_chapter
from .ids import IdentifierAllocator
from .models import BookInfo, Chapter, FontAsset, MediaType, Package
from .nav import build_nav_entries, render_nav_xhtml, render_ncx
from .package import (
    build_manifest,
    build_spine,
    check_manifest,
    check_references,
    content_items,
    nav_item,
    ncx_item,
    render_opf,
)

logger = logging.getLogger(__name__)


class BuildEvent(dict):
    """Opaque event object for progress reporting."""
    pass


def _emit(cb: Optional[Callable[[BuildEvent], None]], ev: BuildEvent) -> None:
    if cb:
        try:
            cb(ev)
        except Exception:
            # Never let callbacks break the build
            logger.exception("on_event callback failed for %s", ev.get("type"))


def assemble(
    info: BookInfo,
    chapters: Iterable[Chapter],
    *,
    fonts: Sequence[FontAsset] = (),
    allocator: Optional[IdentifierAllocator] = None,
    modified: Optional[datetime] = None,
    on_event: Optional[Callable[[BuildEvent], None]] = None,
) -> Package:
    """Build every archive entry of the book in memory.

    Raises MalformedFragment, DuplicateIdentifier, DanglingReference or
    EmptyPackage; nothing is written anywhere.
    """
    chapters = tuple(chapters)
    fonts = tuple(fonts)
    allocator = allocator or IdentifierAllocator()
    book_id = allocator.book_identifier()

    epub_ns = info.version == 3
    roots = [check_fragment(ch.body, idx, ch.title, epub_ns) for idx, ch in enumerate(chapters, 1)]

    css_text = build_stylesheet(info, fonts)
    manifest = build_manifest(allocator, info, len(chapters), stylesheet=css_text is not None, fonts=fonts)
    check_manifest(manifest)
    logger.debug("manifest for %r: %s", info.title, [item.id for item in manifest])

    chapter_items = content_items(manifest)
    css_item = next((i for i in manifest if i.media_type is MediaType.CSS), None)
    css_href = css_item.href if css_item else None
    nav_entries = build_nav_entries(chapters, chapter_items, roots)

    documents: Dict[str, bytes] = {}
    for idx, (ch, item, entry) in enumerate(zip(chapters, chapter_items, nav_entries), 1):
        documents[item.id] = render_chapter(info, ch, css_href, title=entry.title).encode("utf-8")
        _emit(on_event, BuildEvent(type="chapter_rendered", index=idx, id=item.id, title=entry.title))

    nav = nav_item(manifest)
    ncx = ncx_item(manifest)
    if nav.media_type is MediaType.XHTML:
        documents[nav.id] = render_nav_xhtml(info, nav_entries, css_href).encode("utf-8")
    if ncx is not None:
        toc_href = nav.href if (info.nav_in_spine and nav is not ncx) else None
        documents[ncx.id] = render_ncx(info, book_id, nav_entries, toc_href).encode("utf-8")
    if css_item is not None:
        documents[css_item.id] = css_text.encode("utf-8")
    for item, font in zip((i for i in manifest if i.media_type.is_font), fonts):
        documents[item.id] = font.data

    spine = build_spine(manifest, nav_in_spine=info.nav_in_spine)
    check_references(manifest, spine, nav_entries)

    opf = render_opf(info, book_id, manifest, spine, modified)
    entries = archive_entries(manifest, documents, opf.encode("utf-8"))
    _emit(on_event, BuildEvent(type="package_assembled", book_id=book_id, chapters=len(chapters), entries=len(entries)))
    return Package(
        book_id=book_id,
        info=info,
        manifest=manifest,
        spine=spine,
        nav=nav_entries,
        entries=tuple(entries),
    )


def build_epub(
    info: BookInfo,
    chapters: Iterable[Chapter],
    out_path: str,
    *,
    fonts: Sequence[FontAsset] = (),
    allocator: Optional[IdentifierAllocator] = None,
    modified: Optional[datetime] = None,
    on_event: Optional[Callable[[BuildEvent], None]] = None,
) -> str:
    """Assemble the book and write it to `out_path`. Returns the path."""
    package = assemble(
        info,
        chapters,
        fonts=fonts,
        allocator=allocator,
        modified=modified,
        on_event=on_event,
    )
    write_archive(package.entries, out_path)
    _emit(on_event, BuildEvent(type="archive_written", path=out_path, book_id=package.book_id))
    return out_path
