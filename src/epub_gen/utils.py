from __future__ import annotations

import re
import unicodedata as ud
from html.entities import html5

# Entities XML knows without a DTD
XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}

_RE_NAMED_ENTITY = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
# Sections where "&name;" is literal text rather than a reference
_RE_LITERAL = re.compile(r"<!\[CDATA\[.*?\]\]>|<!--.*?-->", re.S)


def make_slug(s: str) -> str:
    s = ud.normalize("NFKC", s)
    s = re.sub(r"\s+", "-", s.strip())
    s = re.sub(r"[^\w\-]+", "-", s, flags=re.U)
    s = re.sub(r"-+", "-", s)
    return s.strip("-").lower() or "item"


def make_title_filename(title: str) -> str:
    """Make a safe filename from book title, preserving non-Latin letters."""
    t = ud.normalize("NFKC", title)
    t = (
        t.replace('/', '-').replace('\\', '-').replace(':', ' - ')
        .replace('*', ' ').replace('?', ' ').replace('"', "'")
        .replace('<', '(').replace('>', ')').replace('|', '-')
        .strip()
    )
    t = re.sub(r"\s+", " ", t)
    if len(t) > 120:
        t = t[:120].rstrip()
    return t or 'book'


def _entity_repl(m: re.Match) -> str:
    name = m.group(1)
    if name in XML_ENTITIES:
        return m.group(0)
    chars = html5.get(name + ";")
    if chars is None:
        return m.group(0)
    return "".join(f"&#{ord(c)};" for c in chars)


def numeric_entities(fragment: str) -> str:
    """Rewrite HTML named entities as numeric references.

    XHTML documents inside an EPUB are parsed as plain XML, where only the
    five predefined entities exist. Unknown names are left alone so that the
    well-formedness check reports them. CDATA sections and comments are
    copied untouched.
    """
    out = []
    last = 0
    for m in _RE_LITERAL.finditer(fragment):
        out.append(_RE_NAMED_ENTITY.sub(_entity_repl, fragment[last:m.start()]))
        out.append(m.group(0))
        last = m.end()
    out.append(_RE_NAMED_ENTITY.sub(_entity_repl, fragment[last:]))
    return "".join(out)
