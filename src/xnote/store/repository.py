"""Note operations, each as its own store load → mutate → save cycle."""

from __future__ import annotations

import logging

from xnote.errors import NoteExistsError
from xnote.store import notes as note_ops
from xnote.store.document import Store

logger = logging.getLogger(__name__)

_GIST_KEYS = ("gistId", "gistUrl", "gistFilename")


class NoteRepository:
    """Note-level access to a Store. Keeps no state between calls."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def create(
        self,
        name: str,
        content: str,
        is_markdown: bool = True,
        *,
        overwrite: bool = True,
    ) -> dict:
        """Create or replace a note. With overwrite=False an existing name raises
        NoteExistsError and nothing is written."""

        def mutate(document: dict) -> dict:
            if not overwrite and note_ops.find_by_name(document, name) is not None:
                raise NoteExistsError(name)
            return note_ops.create_or_replace(document, name, content, is_markdown)

        note = self.store.update(mutate)
        logger.info("Saved note %r (%d chars)", name, len(content))
        return note

    def get(self, name: str) -> dict | None:
        return note_ops.find_by_name(self.store.load(), name)

    def list(self) -> list[dict]:
        return note_ops.list_all(self.store.load())

    def similar(self, name: str, limit: int = 3) -> list[str]:
        return note_ops.similar_names(self.store.load(), name, limit)

    def link_gist(self, name: str, *, gist_id: str, url: str, filename: str) -> dict | None:
        """Record gist details on a note. Returns None if the note is gone."""

        def mutate(document: dict) -> dict | None:
            note = note_ops.find_by_name(document, name)
            if note is not None:
                note.update(gistId=gist_id, gistUrl=url, gistFilename=filename)
            return note

        return self.store.update(mutate)

    def unlink_gist(self, name: str) -> dict | None:
        def mutate(document: dict) -> dict | None:
            note = note_ops.find_by_name(document, name)
            if note is not None:
                for key in _GIST_KEYS:
                    note.pop(key, None)
            return note

        return self.store.update(mutate)
