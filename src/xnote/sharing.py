"""Markdown export and GitHub Gist sharing through the `gh` CLI.

Gist calls return a ShareResult instead of raising. Outcomes:

- ok         gh exited 0
- not_found  gh exited non-zero and stderr matched NOT_FOUND_PATTERNS
- timeout    gh did not finish within the timeout
- failed     anything else, including a missing or unauthenticated gh
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

from xnote.store.document import atomic_write_text
from xnote.store.notes import note_markdown

logger = logging.getLogger(__name__)

# gh prints these when the gist id no longer resolves (deleted, or never ours)
NOT_FOUND_PATTERNS = (
    "http 404",
    "not found",
    "could not find",
    "no such gist",
    "gist does not exist",
)


class ShareOutcome(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ShareResult:
    outcome: ShareOutcome
    gist_id: str | None = None
    url: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is ShareOutcome.OK

    def to_dict(self) -> dict:
        return {
            "success": self.ok,
            "outcome": self.outcome.value,
            "gistId": self.gist_id,
            "url": self.url,
            "error": None if self.ok else self.message,
        }


def gist_filename(name: str) -> str:
    """Filesystem-safe file name for a note: strip illegal chars, spaces to hyphens."""
    slug = re.sub(r'[<>:"/\\|?*\n\r\t]', "", name)
    slug = slug.strip().replace(" ", "-")
    return f"{slug or 'note'}.md"


def classify_failure(stderr: str) -> ShareOutcome:
    text = stderr.lower()
    if any(pattern in text for pattern in NOT_FOUND_PATTERNS):
        return ShareOutcome.NOT_FOUND
    return ShareOutcome.FAILED


# ── Export ───────────────────────────────────────────────────


def render_markdown(note: dict, *, with_frontmatter: bool = False) -> str:
    body = note_markdown(note)
    if not with_frontmatter:
        return body if body.endswith("\n") else body + "\n"

    metadata: dict = {"name": note.get("name", "")}
    if note.get("updatedAt"):
        metadata["updated"] = datetime.fromtimestamp(note["updatedAt"] / 1000).isoformat(
            timespec="seconds"
        )
    return frontmatter.dumps(frontmatter.Post(body, **metadata)) + "\n"


def export_markdown(note: dict, path: Path, *, with_frontmatter: bool = False) -> Path:
    """Write the note's Markdown to path atomically. Errors propagate."""
    path = Path(path).expanduser()
    atomic_write_text(path, render_markdown(note, with_frontmatter=with_frontmatter))
    logger.info("Exported %r to %s", note.get("name"), path)
    return path


# ── Gists ────────────────────────────────────────────────────


@dataclass
class GistClient:
    """Subprocess wrapper around `gh gist`."""

    gh: str = "gh"
    timeout: int = 30

    async def _run(self, args: list[str], stdin: str | None = None) -> ShareResult:
        cmd = [self.gh, "gist", *args]
        logger.debug("Running: %s", " ".join(cmd[:4]))

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error("gh gist %s timed out after %ds", args[0], self.timeout)
            return ShareResult(
                ShareOutcome.TIMEOUT, message=f"gh did not respond within {self.timeout}s"
            )
        except FileNotFoundError:
            return ShareResult(
                ShareOutcome.FAILED, message=f"`{self.gh}` CLI not found. Is GitHub CLI installed?"
            )

        if result.returncode != 0:
            stderr = result.stderr.strip()
            outcome = classify_failure(stderr)
            logger.error("gh gist %s failed (rc=%d): %s", args[0], result.returncode, stderr)
            return ShareResult(outcome, message=stderr or "unknown error")

        url = result.stdout.strip().splitlines()[-1].strip() if result.stdout.strip() else None
        return ShareResult(ShareOutcome.OK, url=url)

    async def create(
        self,
        filename: str,
        content: str,
        *,
        description: str = "",
        public: bool = False,
    ) -> ShareResult:
        args = ["create", "--filename", filename]
        if description:
            args.extend(["--desc", description])
        if public:
            args.append("--public")
        args.append("-")

        result = await self._run(args, stdin=content)
        if result.ok and result.url:
            result.gist_id = result.url.rstrip("/").rsplit("/", 1)[-1]
        return result

    async def update(self, gist_id: str, filename: str, content: str) -> ShareResult:
        result = await self._run(["edit", gist_id, "--filename", filename, "-"], stdin=content)
        if result.ok:
            result.gist_id = gist_id
            result.url = f"https://gist.github.com/{gist_id}"
        return result

    async def delete(self, gist_id: str) -> ShareResult:
        result = await self._run(["delete", gist_id, "--yes"])
        if result.ok:
            result.gist_id = gist_id
            result.url = None
        return result
