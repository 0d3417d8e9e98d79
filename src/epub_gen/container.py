from __future__ import annotations

import io
import logging
import os
import tempfile
import zipfile
from typing import IO, List, Mapping, Sequence, Union

from .exceptions import EmptyPackage, IOFailure
from .models import ArchiveEntry, Compression, ManifestItem
from .package import content_items

logger = logging.getLogger(__name__)

MIMETYPE = b"application/epub+zip"
OEBPS = "OEBPS"
OPF_NAME = "package.opf"
OPF_PATH = f"{OEBPS}/{OPF_NAME}"

# Fixed entry timestamp so identical input gives identical archives
ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def container_xml(opf_path: str = OPF_PATH) -> bytes:
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>\n"
        "<container version=\"1.0\" xmlns=\"urn:oasis:names:tc:opendocument:xmlns:container\">\n"
        "  <rootfiles>\n"
        "    <rootfile full-path=\"%s\" media-type=\"application/oebps-package+xml\"/>\n"
        "  </rootfiles>\n"
        "</container>\n"
    ).encode("utf-8") % opf_path.encode("utf-8")


def check_not_empty(manifest: Sequence[ManifestItem]) -> None:
    if not content_items(manifest):
        raise EmptyPackage("Nothing to package: the book has no chapters")


def archive_entries(
    manifest: Sequence[ManifestItem],
    documents: Mapping[str, bytes],
    opf: bytes,
) -> List[ArchiveEntry]:
    """Archive entries in write order.

    `documents` maps each manifest item id to its bytes. mimetype comes first
    and is the only stored entry; manifest items follow in manifest order.
    """
    check_not_empty(manifest)
    entries = [
        ArchiveEntry("mimetype", MIMETYPE, Compression.STORED),
        ArchiveEntry("META-INF/container.xml", container_xml()),
        ArchiveEntry(OPF_PATH, opf),
    ]
    for item in manifest:
        entries.append(ArchiveEntry(f"{OEBPS}/{item.href}", documents[item.id]))
    return entries


def _zip_info(entry: ArchiveEntry) -> zipfile.ZipInfo:
    zi = zipfile.ZipInfo(entry.path, date_time=ZIP_DATE_TIME)
    if entry.compression is Compression.STORED:
        zi.compress_type = zipfile.ZIP_STORED
    else:
        zi.compress_type = zipfile.ZIP_DEFLATED
    zi.external_attr = 0o644 << 16
    return zi


def _write_zip(fh: Union[str, IO[bytes]], entries: Sequence[ArchiveEntry]) -> None:
    if not entries or entries[0].path != "mimetype" or entries[0].compression is not Compression.STORED:
        raise ValueError("first archive entry must be the stored mimetype")
    with zipfile.ZipFile(fh, "w") as zf:
        for entry in entries:
            zf.writestr(_zip_info(entry), entry.data)


def archive_bytes(entries: Sequence[ArchiveEntry]) -> bytes:
    buf = io.BytesIO()
    _write_zip(buf, entries)
    return buf.getvalue()


def write_archive(entries: Sequence[ArchiveEntry], out_path: str) -> str:
    """Write the archive next to `out_path` and move it into place.

    A failed write leaves no partial file behind and any existing file at
    `out_path` untouched.
    """
    out_dir = os.path.dirname(os.path.abspath(out_path))
    try:
        os.makedirs(out_dir, exist_ok=True)
        tmp_handle = tempfile.NamedTemporaryFile(
            prefix=".epub_gen.", suffix=".epub.tmp", dir=out_dir, delete=False
        )
    except OSError as e:
        raise IOFailure(f"Cannot write {out_path}: {e}", path=out_path) from e
    tmp_path = tmp_handle.name
    try:
        with tmp_handle as fh:
            _write_zip(fh, entries)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, out_path)
    except OSError as e:
        _discard(tmp_path)
        raise IOFailure(f"Cannot write {out_path}: {e}", path=out_path) from e
    except BaseException:
        _discard(tmp_path)
        raise
    logger.debug("wrote %d entries to %s", len(entries), out_path)
    return out_path


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass

