"""Exception types shared across xnote."""

from __future__ import annotations


class XnoteError(Exception):
    """Base class for xnote errors."""


class StoreConflictError(XnoteError):
    """The store file changed on disk between load and save."""

    def __init__(self, path) -> None:
        super().__init__(f"{path} was modified by another process; reload and retry")
        self.path = path


class NoteExistsError(XnoteError):
    """A note with the same (case-insensitive) name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Note "{name}" already exists')
        self.name = name
