"""Load/save primitives over the single shared JSON document.

The GUI app host and every CLI invocation run their own load → mutate → save
cycle against the same file. Saves are atomic (temp file + rename in the same
directory), so a reader always sees either the old or the new document.

Concurrent writers are detected, not prevented: `update()` fingerprints the
file at load time and refuses to save if it changed in the meantime. A small
window between that check and the rename remains.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, NamedTuple, TypeVar

from xnote.errors import StoreConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNCHECKED: Any = object()


def empty_document() -> dict:
    return {"notes": []}


class StoreVersion(NamedTuple):
    """File fingerprint taken at load time. A rename always yields a new inode."""

    inode: int
    mtime_ns: int
    size: int


def atomic_write_text(path: Path, text: str, *, encoding: str = "utf-8") -> None:
    """Write text to path via a temp file in the same directory and a rename.

    On failure the temp file is removed and the error propagates.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class Store:
    """Read/write access to the JSON document at a fixed path."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _version(self) -> StoreVersion | None:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return StoreVersion(st.st_ino, st.st_mtime_ns, st.st_size)

    def _quarantine(self, version: StoreVersion) -> None:
        """Copy an unreadable store aside so the next save can't destroy it.

        The copy is named after the file's own version, so repeated loads of
        the same broken file keep a single backup.
        """
        target = self.path.with_name(f"{self.path.name}.corrupt-{version.mtime_ns}-{version.size}")
        if target.exists():
            return
        try:
            shutil.copy2(self.path, target)
            logger.warning("Kept unreadable store as %s", target)
        except OSError as e:
            logger.error("Could not back up unreadable store %s: %s", self.path, e)

    def load_versioned(self) -> tuple[dict, StoreVersion | None]:
        """Return (document, version). Missing or corrupt files give an empty document."""
        version = self._version()
        if version is None:
            return empty_document(), None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("Error loading data from %s: %s", self.path, e)
            self._quarantine(version)
            return empty_document(), version

        if not isinstance(data, dict):
            logger.error("Store %s does not hold a JSON object, starting fresh", self.path)
            self._quarantine(version)
            return empty_document(), version

        return data, version

    def load(self) -> dict:
        return self.load_versioned()[0]

    def save(self, document: dict, *, expected_version: StoreVersion | None = _UNCHECKED) -> None:
        """Atomically replace the store with document.

        With expected_version, raise StoreConflictError if the file is no
        longer the one that was loaded (None means "did not exist").
        """
        if expected_version is not _UNCHECKED and self._version() != expected_version:
            raise StoreConflictError(self.path)

        atomic_write_text(self.path, json.dumps(document, indent=2, ensure_ascii=False))
        logger.debug("Saved store %s (%d notes)", self.path, len(document.get("notes") or []))

    def update(self, mutate: Callable[[dict], T]) -> T:
        """Run one load → mutate → save cycle and return mutate's result.

        Nothing is written if mutate raises.
        """
        document, version = self.load_versioned()
        result = mutate(document)
        self.save(document, expected_version=version)
        return result
