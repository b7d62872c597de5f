"""Shared on-disk store.

Layout:
    ~/.xnote/
    ├── data.json            # The store: notes, windowBounds, aiSettings, uiState
    ├── data.json.corrupt-*  # Unreadable stores kept aside on load
    ├── images/              # Images returned by AI generation
    └── xnote.pid            # App host PID file
"""

from xnote.store.document import Store, StoreVersion, atomic_write_text
from xnote.store.repository import NoteRepository

__all__ = ["NoteRepository", "Store", "StoreVersion", "atomic_write_text"]
