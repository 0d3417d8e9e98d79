from __future__ import annotations

import xml.sax.saxutils as xsu
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .assets import font_archive_names, font_name
from .exceptions import DanglingReference, DuplicateIdentifier
from .ids import IdentifierAllocator
from .models import BookInfo, FontAsset, ManifestItem, MediaType, NavEntry, SpineEntry

GENERATOR = "epub_gen"
NAV_XHTML = "nav.xhtml"
TOC_NCX = "toc.ncx"
STYLESHEET = "main.css"


def _attr(s: str) -> str:
    return xsu.escape(s, {'"': "&quot;"})


def build_manifest(
    allocator: IdentifierAllocator,
    info: BookInfo,
    chapter_count: int,
    *,
    stylesheet: bool = False,
    fonts: Sequence[FontAsset] = (),
) -> Tuple[ManifestItem, ...]:
    """Manifest items in archive order: navigation, chapters, stylesheet, fonts."""
    items: List[ManifestItem] = []
    if info.version == 3:
        items.append(ManifestItem(allocator.nav(), NAV_XHTML, MediaType.XHTML, is_nav=True))
        if info.include_ncx:
            items.append(ManifestItem(allocator.ncx(), TOC_NCX, MediaType.NCX))
    else:
        items.append(ManifestItem(allocator.nav(), TOC_NCX, MediaType.NCX, is_nav=True))
    for _ in range(chapter_count):
        cid = allocator.chapter()
        items.append(ManifestItem(cid, f"{cid}.xhtml", MediaType.XHTML))
    if stylesheet:
        items.append(ManifestItem(allocator.stylesheet(), f"{MediaType.CSS.subdir}/{STYLESHEET}", MediaType.CSS))
    for font, archive_name in zip(fonts, font_archive_names(fonts)):
        mt = font.media_type
        items.append(ManifestItem(allocator.font(font_name(font)), f"{mt.subdir}/{archive_name}", mt))
    return tuple(items)


def content_items(manifest: Sequence[ManifestItem]) -> Tuple[ManifestItem, ...]:
    """Chapter documents, in manifest order."""
    return tuple(i for i in manifest if i.media_type is MediaType.XHTML and not i.is_nav)


def nav_item(manifest: Sequence[ManifestItem]) -> ManifestItem:
    for item in manifest:
        if item.is_nav:
            return item
    raise DanglingReference("Manifest has no navigation document", identifier="nav")


def ncx_item(manifest: Sequence[ManifestItem]) -> Optional[ManifestItem]:
    for item in manifest:
        if item.media_type is MediaType.NCX:
            return item
    return None


def build_spine(manifest: Sequence[ManifestItem], *, nav_in_spine: bool = False) -> Tuple[SpineEntry, ...]:
    """Linear reading order; the nav document leads only when asked to."""
    spine: List[SpineEntry] = []
    if nav_in_spine:
        nav = nav_item(manifest)
        if nav.media_type is MediaType.XHTML:
            spine.append(SpineEntry(nav.id))
    spine.extend(SpineEntry(item.id) for item in content_items(manifest))
    return tuple(spine)


def check_manifest(manifest: Sequence[ManifestItem]) -> None:
    seen_ids: Dict[str, ManifestItem] = {}
    seen_hrefs: Dict[str, ManifestItem] = {}
    navs = 0
    for item in manifest:
        if item.id in seen_ids:
            raise DuplicateIdentifier(
                f"Manifest id {item.id!r} used by both {seen_ids[item.id].href} and {item.href}",
                identifier=item.id,
            )
        if item.href in seen_hrefs:
            raise DuplicateIdentifier(
                f"Archive path {item.href!r} used by both {seen_hrefs[item.href].id!r} and {item.id!r}",
                identifier=item.id,
            )
        seen_ids[item.id] = item
        seen_hrefs[item.href] = item
        if item.is_nav:
            navs += 1
            if navs > 1:
                raise DuplicateIdentifier(
                    f"More than one navigation document in manifest (second is {item.id!r})",
                    identifier=item.id,
                )
    nav_item(manifest)


def check_references(
    manifest: Sequence[ManifestItem],
    spine: Sequence[SpineEntry],
    nav: Sequence[NavEntry],
) -> None:
    """Every spine and navigation reference must resolve."""
    by_id = {item.id: item for item in manifest}
    for entry in spine:
        item = by_id.get(entry.idref)
        if item is None:
            raise DanglingReference(f"Spine references unknown item {entry.idref!r}", identifier=entry.idref)
        if item.media_type is not MediaType.XHTML:
            raise DanglingReference(
                f"Spine references {entry.idref!r} which is not a content document",
                identifier=entry.idref,
            )
    spine_ids = {entry.idref for entry in spine}

    def walk(entries: Sequence[NavEntry]) -> None:
        for e in entries:
            item = by_id.get(e.idref)
            if item is None or item.href != e.href:
                raise DanglingReference(f"Navigation entry {e.title!r} points at unknown item {e.idref!r}", identifier=e.idref)
            if e.idref not in spine_ids:
                raise DanglingReference(f"Navigation entry {e.title!r} points at {e.idref!r} outside the spine", identifier=e.idref)
            walk(e.children)

    walk(nav)


def format_modified(modified: Optional[datetime] = None) -> str:
    modified = modified or datetime.now(timezone.utc)
    if modified.tzinfo is not None:
        modified = modified.astimezone(timezone.utc)
    return modified.strftime("%Y-%m-%dT%H:%M:%SZ")


def render_opf(
    info: BookInfo,
    book_id: str,
    manifest: Sequence[ManifestItem],
    spine: Sequence[SpineEntry],
    modified: Optional[datetime] = None,
) -> str:
    """Package document: metadata, manifest, spine."""
    v3 = info.version == 3

    scheme = "" if v3 else " opf:scheme=\"UUID\""
    dc: List[str] = [
        f"    <dc:identifier id=\"book-id\"{scheme}>{xsu.escape(book_id)}</dc:identifier>",
        f"    <dc:title>{xsu.escape(info.title)}</dc:title>",
        f"    <dc:language>{xsu.escape(info.language)}</dc:language>",
    ]
    if info.author:
        role = "" if v3 else " opf:role=\"aut\""
        dc.append(f"    <dc:creator{role}>{xsu.escape(info.author)}</dc:creator>")
    if info.publisher:
        dc.append(f"    <dc:publisher>{xsu.escape(info.publisher)}</dc:publisher>")
    if info.description:
        dc.append(f"    <dc:description>{xsu.escape(info.description)}</dc:description>")
    if info.date:
        dc.append(f"    <dc:date>{xsu.escape(info.date)}</dc:date>")
    if info.rights:
        dc.append(f"    <dc:rights>{xsu.escape(info.rights)}</dc:rights>")
    if v3:
        dc.append(f"    <meta property=\"dcterms:modified\">{format_modified(modified)}</meta>")
    dc.append(f"    <meta name=\"generator\" content=\"{GENERATOR}\"/>")

    manifest_xml = []
    for item in manifest:
        props = " properties=\"nav\"" if (v3 and item.is_nav) else ""
        manifest_xml.append(
            f"    <item id=\"{_attr(item.id)}\" href=\"{_attr(item.href)}\" media-type=\"{item.media_type.mime}\"{props}/>"
        )

    spine_attrs = ""
    ncx = ncx_item(manifest)
    if ncx is not None:
        spine_attrs += f" toc=\"{_attr(ncx.id)}\""
    if v3 and info.direction:
        spine_attrs += f" page-progression-direction=\"{info.direction}\""
    spine_xml = [f"    <itemref idref=\"{_attr(entry.idref)}\"/>" for entry in spine]

    lang = _attr(info.language)
    if v3:
        dir_attr = f" dir=\"{info.direction}\"" if info.direction else ""
        package_open = (
            "<package xmlns=\"http://www.idpf.org/2007/opf\" version=\"3.0\" "
            f"unique-identifier=\"book-id\" xml:lang=\"{lang}\"{dir_attr}>\n"
        )
    else:
        package_open = "<package xmlns=\"http://www.idpf.org/2007/opf\" version=\"2.0\" unique-identifier=\"book-id\">\n"

    return (
        "<?xml version=\"1.0\" encoding=\"utf-8\"?>\n"
        "%s"
        "  <metadata xmlns:dc=\"http://purl.org/dc/elements/1.1/\" xmlns:opf=\"http://www.idpf.org/2007/opf\">\n"
        "%s\n"
        "  </metadata>\n"
        "  <manifest>\n"
        "%s\n"
        "  </manifest>\n"
        "  <spine%s>\n"
        "%s"
        "  </spine>\n"
        "</package>\n"
    ) % (
        package_open,
        "\n".join(dc),
        "\n".join(manifest_xml),
        spine_attrs,
        "".join(line + "\n" for line in spine_xml),
    )
