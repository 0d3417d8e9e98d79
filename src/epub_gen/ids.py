from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional, Set

from .utils import make_slug

logger = logging.getLogger(__name__)


class IdentifierAllocator:
    """Hands out manifest identifiers for one assembly run.

    Resource ids are deterministic (same requests in the same order give the
    same ids); only the book identifier is random. A requested id that is
    already taken gets a numeric suffix, so ids never collide.
    """

    def __init__(self, uuid_fn: Optional[Callable[[], uuid.UUID]] = None):
        self.uuid_fn = uuid_fn or uuid.uuid4
        self._taken: Set[str] = set()
        self._chapters = 0
        self._book_id: Optional[str] = None

    def book_identifier(self) -> str:
        if self._book_id is None:
            self._book_id = f"urn:uuid:{self.uuid_fn()}"
        return self._book_id

    def reserve(self, wanted: str) -> str:
        ident = wanted
        n = 1
        while ident in self._taken:
            n += 1
            ident = f"{wanted}-{n}"
        self._taken.add(ident)
        if ident != wanted:
            logger.debug("identifier %r taken, allocated %r", wanted, ident)
        return ident

    def chapter(self) -> str:
        self._chapters += 1
        return self.reserve(f"chapter-{self._chapters:04d}")

    def nav(self) -> str:
        return self.reserve("nav")

    def ncx(self) -> str:
        return self.reserve("ncx")

    def stylesheet(self) -> str:
        return self.reserve("css-main")

    def font(self, name: str) -> str:
        return self.reserve(f"font-{make_slug(name)}")

    def __contains__(self, ident: str) -> bool:
        return ident in self._taken
