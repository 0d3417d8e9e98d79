from __future__ import annotations


class EpubGenError(Exception):
    """Base user-facing error for epub_gen.

    Use this for predictable, actionable failures (bad fragment, nothing to
    package, unwritable output, etc.). CLI will catch this and print a concise
    message without a traceback.
    """


class MalformedFragment(EpubGenError):
    """Chapter body cannot be embedded in an XHTML document."""

    def __init__(self, message: str, *, chapter_index: int, title: str = ""):
        super().__init__(message)
        self.chapter_index = chapter_index
        self.title = title


class DuplicateIdentifier(EpubGenError):
    """Two manifest items share an id or an href."""

    def __init__(self, message: str, *, identifier: str):
        super().__init__(message)
        self.identifier = identifier


class DanglingReference(EpubGenError):
    """Spine or navigation points at something the manifest does not hold."""

    def __init__(self, message: str, *, identifier: str):
        super().__init__(message)
        self.identifier = identifier


class EmptyPackage(EpubGenError):
    """Manifest holds no content documents."""


class IOFailure(EpubGenError):
    """Writing the output archive failed."""

    def __init__(self, message: str, *, path: str):
        super().__init__(message)
        self.path = path
