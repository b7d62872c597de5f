"""App host process — where the tray/window toolkit lives.

Usage: xnote-app [--open NAME]   (or: python -m xnote.app)

Manages:
- AppContext: config, store, engines, gist client, active note (no globals)
- PID file (prevent duplicate instances, lets the CLI find us)
- Signals: SIGTERM/SIGINT shut down, SIGUSR1 activates uiState.pendingOpen
- Bridge: the calls the UI layer makes into this process
"""

from __future__ import annotations

import argparse
import asyncio
import fcntl
import logging
import os
import signal
import sys
from collections.abc import Callable
from pathlib import Path

from xnote.config import XnoteConfig, load_config
from xnote.engines import GenerationRequest, InputImage, create_engine
from xnote.engines.base import Engine, TextDelta
from xnote.errors import StoreConflictError
from xnote.generation import AISettings, Done, Failed, ImageReady, generate_content
from xnote.logging_setup import setup_logging
from xnote.sharing import GistClient, ShareOutcome, export_markdown, gist_filename
from xnote.store import NoteRepository, Store
from xnote.store.notes import note_markdown

logger = logging.getLogger(__name__)

ActivateListener = Callable[[str], None]


def read_pid(pid_file: Path) -> int | None:
    """Return the PID of a live app host, or None.

    The host holds an exclusive flock on the PID file while it runs. A file
    nobody has locked is left over from a crash, and its PID may belong to
    an unrelated process by now.
    """
    try:
        f = open(pid_file)
    except FileNotFoundError:
        return None
    with f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
        except BlockingIOError:
            try:
                return int(f.read().strip())
            except ValueError:
                return None
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    logger.debug("Ignoring stale PID file %s", pid_file)
    return None


class AppContext:
    """Everything the handlers need, built in order and torn down on shutdown."""

    def __init__(self, config: XnoteConfig | None = None) -> None:
        self.config = config or load_config()
        self.store = Store(self.config.data_file)
        self.notes = NoteRepository(self.store)
        self.gists = GistClient(gh=self.config.share.gh_path, timeout=self.config.share.timeout)
        self.active_note: str | None = None
        self._listeners: list[ActivateListener] = []
        self._shutdown_event = asyncio.Event()
        self._pid_fd: int | None = None

    def engine_for(self, model: str, api_key: str) -> Engine:
        return create_engine(model, api_key, self.config.engine)

    # ── Note activation (the toolkit shows the window) ───────

    def on_activate(self, listener: ActivateListener) -> None:
        self._listeners.append(listener)

    def activate(self, name: str) -> None:
        self.active_note = name
        logger.info("Activating note %r", name)
        for listener in self._listeners:
            listener(name)

    def take_pending_open(self) -> str | None:
        """Pop uiState.pendingOpen (written by `xnote open`)."""

        def mutate(document: dict) -> str | None:
            ui_state = document.get("uiState")
            if not isinstance(ui_state, dict):
                return None
            return ui_state.pop("pendingOpen", None)

        return self.store.update(mutate)

    # ── PID file management ──────────────────────────────────

    def write_pid(self) -> None:
        """Lock and write the PID file. The lock is held until remove_pid()."""
        pid_file = self.config.pid_file
        pid_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(pid_file, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise RuntimeError(f"Another xnote app host holds {pid_file}") from None
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._pid_fd = fd
        logger.info("PID file written: %s (pid=%d)", pid_file, os.getpid())

    def remove_pid(self) -> None:
        if self._pid_fd is None:
            return
        self.config.pid_file.unlink(missing_ok=True)
        os.close(self._pid_fd)
        self._pid_fd = None

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown, sig)
        loop.add_signal_handler(signal.SIGUSR1, self._handle_open_request)
        return [signal.SIGTERM, signal.SIGINT, signal.SIGUSR1]

    def _handle_shutdown(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    def _handle_open_request(self) -> None:
        name = self.take_pending_open()
        if name:
            self.activate(name)

    # ── Main run loop ────────────────────────────────────────

    async def run(self, open_note: str | None = None) -> None:
        self.write_pid()
        handled = self._setup_signals()
        if open_note:
            self.activate(open_note)

        logger.info("xnote app host started (store=%s)", self.store.path)
        try:
            await self._shutdown_event.wait()
        finally:
            loop = asyncio.get_running_loop()
            for sig in handled:
                loop.remove_signal_handler(sig)
            self.remove_pid()
            logger.info("xnote app host stopped.")

    def shutdown(self) -> None:
        self._shutdown_event.set()


class Bridge:
    """Calls exposed to the UI layer. Each call does its own store cycle."""

    def __init__(self, ctx: AppContext) -> None:
        self.ctx = ctx

    # ── Raw store access ─────────────────────────────────────

    def get_data(self, key: str | None = None):
        data = self.ctx.store.load()
        return data.get(key) if key else data

    def set_data(self, key: str, value) -> bool:
        def mutate(document: dict) -> None:
            document[key] = value

        self.ctx.store.update(mutate)
        return True

    def get_all_data(self) -> dict:
        return self.ctx.store.load()

    def set_all_data(self, document: dict) -> bool:
        self.ctx.store.save(document)
        return True

    def save_window_bounds(self, bounds: dict) -> bool:
        return self.set_data("windowBounds", bounds)

    # ── Settings & UI state ──────────────────────────────────

    def get_ai_settings(self) -> dict:
        return AISettings.from_dict(self.get_data("aiSettings")).to_dict()

    def save_ai_settings(self, settings: dict) -> bool:
        def mutate(document: dict) -> None:
            current = document.get("aiSettings")
            merged = {**(current if isinstance(current, dict) else {}), **settings}
            document["aiSettings"] = merged

        self.ctx.store.update(mutate)
        return True

    def get_ui_state(self) -> dict:
        return self.get_data("uiState") or {}

    def save_ui_state(self, ui_state: dict) -> bool:
        return self.set_data("uiState", ui_state)

    # ── AI ───────────────────────────────────────────────────

    async def generate_content(
        self,
        content: str,
        model: str | None = None,
        images: list | None = None,
        history: list[dict] | None = None,
        inline: bool = False,
        *,
        on_text: Callable[[str], None] | None = None,
        on_image: Callable[[str], None] | None = None,
    ) -> dict:
        """Generate content, pushing chunks to the callbacks; return the aggregate."""
        try:
            input_images = [InputImage.parse(img) for img in images or []]
        except ValueError as e:
            return {"success": False, "error": str(e)}

        request = GenerationRequest(
            prompt=content,
            model=model or self.ctx.config.engine.model,
            history=list(history or []),
            images=input_images,
            inline=inline,
            max_tokens=self.ctx.config.engine.max_tokens,
        )
        settings = AISettings.from_dict(self.ctx.store.load().get("aiSettings"))

        result: dict = {"success": False, "error": "No response"}
        async for event in generate_content(
            request, settings, self.ctx.engine_for, self.ctx.config.images_dir
        ):
            if isinstance(event, TextDelta):
                if on_text:
                    on_text(event.text)
            elif isinstance(event, ImageReady):
                if on_image:
                    on_image(event.path)
            elif isinstance(event, Done):
                result = {"success": True, "content": event.text, "images": event.images}
            elif isinstance(event, Failed):
                result = {"success": False, "error": event.message}
        return result

    # ── Sharing ──────────────────────────────────────────────

    def export_markdown(
        self,
        name: str,
        choose_path: Callable[[str], Path | str | None],
        *,
        with_frontmatter: bool = False,
    ) -> dict:
        """Export a note; choose_path is the save dialog (None means canceled)."""
        note = self.ctx.notes.get(name)
        if note is None:
            return {"success": False, "error": f'Note "{name}" not found'}

        path = choose_path(gist_filename(note["name"]))
        if not path:
            return {"success": False, "canceled": True}
        try:
            written = export_markdown(note, Path(path), with_frontmatter=with_frontmatter)
        except OSError as e:
            logger.error("Export of %r failed: %s", name, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "path": str(written)}

    async def create_gist(self, name: str, public: bool | None = None) -> dict:
        note = self.ctx.notes.get(name)
        if note is None:
            return {"success": False, "outcome": ShareOutcome.NOT_FOUND.value,
                    "error": f'Note "{name}" not found'}

        filename = gist_filename(note["name"])
        result = await self.ctx.gists.create(
            filename,
            note_markdown(note),
            description=note["name"],
            public=self.ctx.config.share.public if public is None else public,
        )
        if result.ok and result.gist_id:
            try:
                self.ctx.notes.link_gist(
                    note["name"], gist_id=result.gist_id, url=result.url or "", filename=filename
                )
            except (StoreConflictError, OSError) as e:
                # The remote gist exists; hand back its URL even if the note can't record it
                logger.error("Created gist %s but could not link it to %r: %s",
                             result.gist_id, note["name"], e)
        return result.to_dict()

    async def update_gist(self, name: str) -> dict:
        note = self.ctx.notes.get(name)
        if note is None or not note.get("gistId"):
            return {"success": False, "outcome": ShareOutcome.NOT_FOUND.value,
                    "error": f'Note "{name}" has no gist'}

        filename = note.get("gistFilename") or gist_filename(note["name"])
        result = await self.ctx.gists.update(note["gistId"], filename, note_markdown(note))
        if result.outcome is ShareOutcome.NOT_FOUND:
            self.ctx.notes.unlink_gist(note["name"])
        return result.to_dict()

    async def delete_gist(self, name: str) -> dict:
        note = self.ctx.notes.get(name)
        if note is None or not note.get("gistId"):
            return {"success": False, "outcome": ShareOutcome.NOT_FOUND.value,
                    "error": f'Note "{name}" has no gist'}

        result = await self.ctx.gists.delete(note["gistId"])
        # Already gone remotely counts as deleted for the note
        if result.ok or result.outcome is ShareOutcome.NOT_FOUND:
            self.ctx.notes.unlink_gist(note["name"])
        return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="xnote-app", description="xnote app host")
    parser.add_argument("--open", dest="open_note", metavar="NAME", help="note to show on start")
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(config.log_level)

    if read_pid(config.pid_file) is not None:
        print("xnote is already running. Use `xnote open` to show a note.", file=sys.stderr)
        return 1

    ctx = AppContext(config)
    asyncio.run(ctx.run(open_note=args.open_note))
    return 0


if __name__ == "__main__":
    sys.exit(main())
