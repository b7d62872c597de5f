"""Note CRUD over a loaded store document.

Notes are kept as plain dicts so that keys this version does not know about
survive a rewrite:

    {"name": str, "richContent": str (HTML), "mdContent": str, "updatedAt": int (epoch ms)}
"""

from __future__ import annotations

import time

from markdownify import markdownify

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}

BLANK_LINE_HTML = "<br>"


def now_ms() -> int:
    return int(time.time() * 1000)


def escape_html(text: str) -> str:
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def markdown_to_html(content: str) -> str:
    """Wrap each line in a <div>; blank lines keep their height as <div><br></div>."""
    return "".join(
        f"<div>{escape_html(line) or BLANK_LINE_HTML}</div>" for line in content.split("\n")
    )


def _notes(document: dict) -> list[dict]:
    notes = document.get("notes")
    if not isinstance(notes, list):
        notes = []
        document["notes"] = notes
    return notes


def _index_of(notes: list[dict], name: str) -> int:
    key = name.lower()
    for i, note in enumerate(notes):
        if str(note.get("name", "")).lower() == key:
            return i
    return -1


def create_or_replace(
    document: dict,
    name: str,
    content: str,
    is_markdown: bool = True,
    *,
    updated_at: int | None = None,
) -> dict:
    """Create a note, or replace the one with the same case-insensitive name in place."""
    notes = _notes(document)
    note = {
        "name": name,
        "richContent": markdown_to_html(content) if is_markdown else content,
        "mdContent": content if is_markdown else "",
        "updatedAt": updated_at if updated_at is not None else now_ms(),
    }

    idx = _index_of(notes, name)
    if idx >= 0:
        # Keep fields we don't manage here (gist links, newer UI keys)
        notes[idx] = {**notes[idx], **note}
        return notes[idx]

    notes.append(note)
    return note


def find_by_name(document: dict, name: str) -> dict | None:
    notes = document.get("notes") or []
    idx = _index_of(notes, name)
    return notes[idx] if idx >= 0 else None


def list_all(document: dict) -> list[dict]:
    """All notes in storage order."""
    return list(document.get("notes") or [])


def similar_names(document: dict, name: str, limit: int = 3) -> list[str]:
    """Names containing the query, or whose first word the query contains."""
    q = name.lower()
    matches = []
    for note in document.get("notes") or []:
        candidate = str(note.get("name", "")).lower()
        first_word = candidate.split(" ")[0]
        if q in candidate or (first_word and first_word in q):
            matches.append(note.get("name", ""))
            if len(matches) >= limit:
                break
    return matches


def note_size(note: dict) -> int:
    return len(note.get("mdContent") or note.get("richContent") or "")


def note_markdown(note: dict) -> str:
    """Markdown source if one was recorded, else a conversion of the HTML."""
    md = note.get("mdContent") or ""
    if md.strip():
        return md
    return markdownify(
        note.get("richContent") or "",
        heading_style="ATX",
        bullets="-",
    ).strip()
