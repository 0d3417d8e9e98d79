from __future__ import annotations

import os
from typing import List, Optional, Sequence, Tuple

from .exceptions import EpubGenError
from .models import BookInfo, FontAsset, MediaType

_CSS_FORMATS = {
    MediaType.TTF: "format('truetype')",
    MediaType.OTF: "format('opentype')",
    MediaType.WOFF: "format('woff')",
    MediaType.WOFF2: "format('woff2')",
}


def _guess_font_meta(filename: str) -> Tuple[str, str, str]:
    base = os.path.basename(filename)
    name, _ext = os.path.splitext(base)
    if '-' in name:
        family, style_part = name.split('-', 1)
    else:
        family, style_part = name, 'Regular'
    sp = style_part.lower()
    weight = '400'
    style = 'normal'
    if 'bold' in sp:
        weight = '700'
    if 'black' in sp or 'heavy' in sp:
        weight = '900'
    if 'semibold' in sp or 'demibold' in sp:
        weight = '600'
    if 'medium' in sp:
        weight = '500'
    if 'light' in sp:
        weight = '300'
    if 'thin' in sp or 'hairline' in sp:
        weight = '100'
    if 'italic' in sp or 'oblique' in sp:
        style = 'italic'
    return family, weight, style


def font_from_bytes(filename: str, data: bytes, family: Optional[str] = None) -> FontAsset:
    base = os.path.basename(filename)
    MediaType.for_font(base)  # reject unsupported formats early
    guessed, weight, style = _guess_font_meta(base)
    return FontAsset(family=family or guessed, filename=base, data=data, weight=weight, style=style)


def font_name(font: FontAsset) -> str:
    """Family, plus weight/style when they differ from regular."""
    parts = [font.family]
    if font.weight != "400":
        parts.append(font.weight)
    if font.style != "normal":
        parts.append(font.style)
    return "-".join(parts)


def font_archive_names(fonts: Sequence[FontAsset]) -> List[str]:
    """File names under fonts/, suffixed where two fonts share one."""
    names: List[str] = []
    for font in fonts:
        stem, ext = os.path.splitext(font.filename)
        name = font.filename
        n = 1
        while name in names:
            n += 1
            name = f"{stem}-{n}{ext}"
        names.append(name)
    return names


def load_font(path: str, family: Optional[str] = None) -> FontAsset:
    """Read a font file from disk; family/weight/style come from its name."""
    try:
        with open(path, 'rb') as fh:
            data = fh.read()
    except OSError as e:
        raise EpubGenError(f"Cannot read font file {path}: {e}") from e
    return font_from_bytes(path, data, family)


def _css_string(s: str) -> str:
    return s.replace("\\", "\\\\").replace("'", "\\'")


def build_stylesheet(info: BookInfo, fonts: Sequence[FontAsset], fonts_dir: str = "../fonts") -> Optional[str]:
    """Combine @font-face rules for embedded fonts with the custom stylesheet.

    Returns None when the book has neither, in which case no stylesheet is
    shipped or linked.
    """
    if info.css is None and not fonts and not info.fonts:
        return None
    faces: List[str] = []
    for font, archive_name in zip(fonts, font_archive_names(fonts)):
        src_url = f"{fonts_dir}/{archive_name}"
        faces.append(
            "@font-face { font-family: '" + _css_string(font.family) + "'; src: url('" + _css_string(src_url) + "') "
            + _CSS_FORMATS[font.media_type] + "; font-weight: " + font.weight + "; font-style: " + font.style + "; }"
        )
    families: List[str] = []
    for name in list(info.fonts) + [f.family for f in fonts]:
        if name not in families:
            families.append(name)
    parts = []
    if faces:
        parts.append("\n".join(faces) + "\n")
    if families:
        body_fonts = ", ".join([f"'{_css_string(f)}'" for f in families] + ["serif"])
        parts.append(f"body {{ font-family: {body_fonts}; }}\n")
    if info.css:
        parts.append(info.css if info.css.endswith("\n") else info.css + "\n")
    return "".join(parts)
