from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
import xml.sax.saxutils as xsu
from typing import Optional, Set
from xml.parsers import expat

from .exceptions import MalformedFragment
from .models import BookInfo, Chapter
from .utils import numeric_entities

logger = logging.getLogger(__name__)

XHTML_NS = "http://www.w3.org/1999/xhtml"
EPUB_NS = "http://www.idpf.org/2007/ops"

_HEADINGS = {f"{{{XHTML_NS}}}h{n}" for n in range(1, 7)}
_DOCUMENT_TAGS = {f"{{{XHTML_NS}}}{t}" for t in ("html", "head", "body")}
_WRAP_OPEN = f"<div xmlns=\"{XHTML_NS}\" xmlns:epub=\"{EPUB_NS}\">"
_WRAP_OPEN_XHTML = f"<div xmlns=\"{XHTML_NS}\">"


def check_fragment(body: str, chapter_index: int, title: str = "", epub_ns: bool = True) -> ET.Element:
    """Parse a chapter body inside a wrapper element.

    EPUB 2 documents do not declare the epub: namespace, so with
    `epub_ns=False` a body using that prefix is malformed.

    Raises MalformedFragment when the body would break the XHTML document it
    is embedded in. Returns the wrapper so callers can look up ids/headings.
    """
    where = f"chapter {chapter_index} ({title!r})"
    wrap_open = _WRAP_OPEN if epub_ns else _WRAP_OPEN_XHTML
    try:
        root = ET.fromstring(wrap_open + numeric_entities(body) + "</div>")
    except ET.ParseError as e:
        line, col = e.position
        if line == 1:
            col = max(0, col - len(wrap_open))
        raise MalformedFragment(
            f"Malformed body in {where}: {expat.ErrorString(e.code)} at line {line}, column {col}",
            chapter_index=chapter_index,
            title=title,
        ) from None
    for el in root:
        if el.tag in _DOCUMENT_TAGS:
            local = el.tag.rsplit("}", 1)[-1]
            raise MalformedFragment(
                f"Malformed body in {where}: expected a body fragment, found <{local}>",
                chapter_index=chapter_index,
                title=title,
            )
    return root


def fragment_ids(root: ET.Element) -> Set[str]:
    return {el.get("id") for el in root.iter() if el.get("id")}


def first_heading(root: ET.Element) -> Optional[str]:
    for el in root.iter():
        if el.tag in _HEADINGS:
            text = " ".join("".join(el.itertext()).split())
            if text:
                return text
    return None


def xhtml_head(info: BookInfo, title: str, stylesheet_href: Optional[str] = None) -> str:
    """Opening of an XHTML document up to and including <body>."""
    lang = xsu.escape(info.language, {'"': "&quot;"})
    dir_attr = f" dir=\"{info.direction}\"" if info.direction else ""
    if info.version == 3:
        doctype = "<!DOCTYPE html>\n"
        root_attrs = f" xmlns:epub=\"{EPUB_NS}\" xml:lang=\"{lang}\" lang=\"{lang}\"{dir_attr}"
        charset = "  <meta charset=\"utf-8\"/>\n"
    else:
        doctype = (
            "<!DOCTYPE html PUBLIC \"-//W3C//DTD XHTML 1.1//EN\" "
            "\"http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd\">\n"
        )
        charset = "  <meta http-equiv=\"Content-Type\" content=\"application/xhtml+xml; charset=utf-8\"/>\n"
        # XHTML 1.1 has neither the epub namespace nor a lang attribute
        root_attrs = f" xml:lang=\"{lang}\"{dir_attr}"
    link = (
        f"  <link rel=\"stylesheet\" type=\"text/css\" href=\"{xsu.escape(stylesheet_href)}\"/>\n"
        if stylesheet_href else ""
    )
    return (
        "<?xml version=\"1.0\" encoding=\"utf-8\"?>\n"
        "%s"
        "<html xmlns=\"%s\"%s>\n"
        "<head>\n"
        "%s"
        "  <title>%s</title>\n"
        "%s"
        "</head>\n"
        "<body>\n"
    ) % (doctype, XHTML_NS, root_attrs, charset, xsu.escape(title), link)


def render_chapter(info: BookInfo, chapter: Chapter, stylesheet_href: Optional[str] = None, title: Optional[str] = None) -> str:
    """Complete XHTML content document for one chapter.

    `title` overrides the document <title> only; the injected heading always
    uses the chapter's own title. The body fragment is emitted verbatim apart
    from HTML named entities, which become numeric references. Callers run
    check_fragment first.
    """
    title = title if title is not None else chapter.title
    heading = ""
    if info.append_chapter_titles and chapter.title.strip():
        heading = f"  <h1 class=\"chapter-title\">{xsu.escape(chapter.title)}</h1>\n"
    return (
        xhtml_head(info, title or info.title, stylesheet_href)
        + heading
        + numeric_entities(chapter.body)
        + "\n</body>\n</html>\n"
    )
