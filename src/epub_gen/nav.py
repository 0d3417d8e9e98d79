from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
import xml.sax.saxutils as xsu
from typing import List, Optional, Sequence, Tuple

from .content import first_heading, fragment_ids, xhtml_head
from .exceptions import MalformedFragment
from .models import BookInfo, Chapter, ManifestItem, NavEntry

logger = logging.getLogger(__name__)


def _attr(s: str) -> str:
    return xsu.escape(s, {'"': "&quot;"})


def chapter_title(chapter: Chapter, root: ET.Element, index: int) -> str:
    """Chapter title, else first heading in the body, else "Chapter N"."""
    if chapter.title.strip():
        return chapter.title
    heading = first_heading(root)
    if heading:
        logger.warning("chapter %d has no title, using heading %r", index, heading)
        return heading
    logger.warning("chapter %d has no title or heading", index)
    return f"Chapter {index}"


def build_nav_entries(
    chapters: Sequence[Chapter],
    items: Sequence[ManifestItem],
    roots: Sequence[ET.Element],
) -> Tuple[NavEntry, ...]:
    """One top-level entry per chapter, in reading order.

    `items` and `roots` are the chapters' manifest items and parsed bodies,
    aligned with `chapters`. Chapter sections become nested entries.
    """
    entries: List[NavEntry] = []
    for idx, (ch, item, root) in enumerate(zip(chapters, items, roots), 1):
        ids = fragment_ids(root)
        children = []
        for anchor, sec_title in ch.sections:
            if anchor not in ids:
                raise MalformedFragment(
                    f"Section {sec_title!r} of chapter {idx} ({ch.title!r}) points at missing anchor #{anchor}",
                    chapter_index=idx,
                    title=ch.title,
                )
            children.append(NavEntry(title=sec_title, idref=item.id, href=item.href, fragment=anchor))
        entries.append(
            NavEntry(
                title=chapter_title(ch, root, idx),
                idref=item.id,
                href=item.href,
                children=tuple(children),
            )
        )
    return tuple(entries)


def nav_depth(entries: Sequence[NavEntry]) -> int:
    return 2 if any(e.children for e in entries) else 1


def render_nav_xhtml(info: BookInfo, entries: Sequence[NavEntry], stylesheet_href: Optional[str] = None) -> str:
    """EPUB3 navigation document."""

    def build_li(entry: NavEntry, depth: int) -> List[str]:
        indent = "  " * depth
        link = f"<a href=\"{_attr(entry.target)}\">{xsu.escape(entry.title)}</a>"
        if not entry.children:
            return [f"{indent}<li>{link}</li>"]
        lines = [f"{indent}<li>{link}", f"{indent}  <ol>"]
        for child in entry.children:
            lines.extend(build_li(child, depth + 2))
        lines.extend([f"{indent}  </ol>", f"{indent}</li>"])
        return lines

    li_lines: List[str] = []
    for entry in entries:
        li_lines.extend(build_li(entry, 3))

    return (
        xhtml_head(info, info.toc_title or info.title, stylesheet_href)
        + "  <nav epub:type=\"toc\" id=\"toc\">\n"
        + f"    <h1>{xsu.escape(info.toc_title)}</h1>\n"
        + "    <ol>\n"
        + "".join(line + "\n" for line in li_lines)
        + "    </ol>\n"
        + "  </nav>\n"
        + "</body>\n"
        + "</html>\n"
    )


def render_ncx(info: BookInfo, book_id: str, entries: Sequence[NavEntry], toc_href: Optional[str] = None) -> str:
    """EPUB2 NCX with the same entries as the nav document.

    When `toc_href` is given, a leading navPoint points at the nav document.
    """
    nav_counter = [1]

    def build_navpoint(title: str, src: str, children: Sequence[NavEntry], depth: int) -> List[str]:
        idx = nav_counter[0]
        nav_counter[0] += 1
        indent = "  " * depth
        lines = [
            f"{indent}<navPoint id=\"navPoint-{idx}\" playOrder=\"{idx}\">",
            f"{indent}  <navLabel><text>{xsu.escape(title)}</text></navLabel>",
            f"{indent}  <content src=\"{_attr(src)}\"/>",
        ]
        for child in children:
            lines.extend(build_navpoint(child.title, child.target, child.children, depth + 1))
        lines.append(f"{indent}</navPoint>")
        return lines

    navmap_lines: List[str] = []
    if toc_href:
        navmap_lines.extend(build_navpoint(info.toc_title, toc_href, (), 2))
    for entry in entries:
        navmap_lines.extend(build_navpoint(entry.title, entry.target, entry.children, 2))

    doc_author = (
        f"  <docAuthor><text>{xsu.escape(info.author)}</text></docAuthor>\n" if info.author else ""
    )
    return (
        "<?xml version=\"1.0\" encoding=\"utf-8\"?>\n"
        "<ncx xmlns=\"http://www.daisy.org/z3986/2005/ncx/\" version=\"2005-1\" xml:lang=\"%s\">\n"
        "  <head>\n"
        "    <meta name=\"dtb:uid\" content=\"%s\"/>\n"
        "    <meta name=\"dtb:depth\" content=\"%d\"/>\n"
        "    <meta name=\"dtb:totalPageCount\" content=\"0\"/>\n"
        "    <meta name=\"dtb:maxPageNumber\" content=\"0\"/>\n"
        "  </head>\n"
        "  <docTitle><text>%s</text></docTitle>\n"
        "%s"
        "  <navMap>\n"
        "%s"
        "  </navMap>\n"
        "</ncx>\n"
    ) % (
        _attr(info.language),
        _attr(book_id),
        nav_depth(entries),
        xsu.escape(info.title),
        doc_author,
        "".join(line + "\n" for line in navmap_lines),
    )
