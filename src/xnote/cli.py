"""xnote CLI — manage notes in the shared store from the command line.

    echo "content" | xnote create -n "My Note"
    xnote get "My Note" [--html | --json]
    xnote list [--json]
    xnote open "My Note"
    xnote export "My Note" [PATH] [--frontmatter]
    xnote share "My Note" [--public] [--delete]

Exit codes: 0 ok, 1 no input / store error, 2 note not found,
3 note already exists, 4 sharing failed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import subprocess
import sys
from datetime import datetime

from xnote.app import AppContext, Bridge, read_pid
from xnote.config import XnoteConfig, load_config
from xnote.errors import NoteExistsError, StoreConflictError
from xnote.generation import AISettings, generate_note_name
from xnote.logging_setup import setup_logging
from xnote.store import NoteRepository, Store
from xnote.store.notes import note_markdown, note_size

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_INPUT = 1
EXIT_STORE_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_EXISTS = 3
EXIT_SHARE_FAILED = 4


def read_stdin() -> str:
    """Piped stdin, or empty when attached to a terminal."""
    if sys.stdin is None or sys.stdin.isatty():
        return ""
    return sys.stdin.read()


def _repo(config: XnoteConfig) -> NoteRepository:
    return NoteRepository(Store(config.data_file))


def _not_found(repo: NoteRepository, name: str) -> int:
    print(f'Error: Note "{name}" not found.', file=sys.stderr)
    similar = repo.similar(name)
    if similar:
        print("Similar: " + ", ".join(similar), file=sys.stderr)
    return EXIT_NOT_FOUND


# ── Commands ─────────────────────────────────────────────────


def cmd_create(args: argparse.Namespace, config: XnoteConfig) -> int:
    content = read_stdin()
    if not content.strip():
        print("Error: No input. Pipe content to this command.", file=sys.stderr)
        print('Example: echo "content" | xnote create -n "My Note"', file=sys.stderr)
        return EXIT_NO_INPUT

    repo = _repo(config)
    name = args.name
    if not name:
        sys.stderr.write("Generating title... ")
        sys.stderr.flush()
        ctx = AppContext(config)
        settings = AISettings.from_dict(repo.store.load().get("aiSettings"))
        name = asyncio.run(
            generate_note_name(content, settings, ctx.engine_for, config.engine.title_model)
        )
        sys.stderr.write("done\n")

    try:
        repo.create(name, content, True, overwrite=args.force)
    except NoteExistsError:
        print(f'Error: Note "{name}" already exists. Use --force to overwrite.', file=sys.stderr)
        return EXIT_EXISTS
    except (StoreConflictError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_STORE_ERROR

    print(f'Created "{name}"')
    return EXIT_OK


def cmd_get(args: argparse.Namespace, config: XnoteConfig) -> int:
    repo = _repo(config)
    note = repo.get(args.name)
    if note is None:
        return _not_found(repo, args.name)

    if args.json:
        print(json.dumps(note, indent=2, ensure_ascii=False))
    elif args.html:
        print(note.get("richContent", ""))
    else:
        print(note_markdown(note))
    return EXIT_OK


def cmd_list(args: argparse.Namespace, config: XnoteConfig) -> int:
    notes = _repo(config).list()
    if not notes:
        print("No notes yet.")
        print('Create one: echo "Hello" | xnote create -n "My Note"')
        return EXIT_OK

    if args.json:
        rows = [
            {"name": n.get("name"), "updatedAt": n.get("updatedAt"), "size": note_size(n)}
            for n in notes
        ]
        print(json.dumps(rows, indent=2, ensure_ascii=False))
        return EXIT_OK

    # Most recent first, display only
    for n in sorted(notes, key=lambda n: n.get("updatedAt") or 0, reverse=True):
        date = datetime.fromtimestamp((n.get("updatedAt") or 0) / 1000).strftime("%Y-%m-%d")
        print(f"{n.get('name')}  ({date}, {note_size(n)} chars)")
    return EXIT_OK


def cmd_open(args: argparse.Namespace, config: XnoteConfig) -> int:
    repo = _repo(config)
    note = repo.get(args.name)
    if note is None:
        print(f'Error: Note "{args.name}" not found.', file=sys.stderr)
        return EXIT_NOT_FOUND

    name = note["name"]
    pid = read_pid(config.pid_file)
    if pid is not None:
        def mutate(document: dict) -> None:
            ui_state = document.get("uiState")
            if not isinstance(ui_state, dict):
                ui_state = document["uiState"] = {}
            ui_state["pendingOpen"] = name

        try:
            repo.store.update(mutate)
        except (StoreConflictError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_STORE_ERROR
        os.kill(pid, signal.SIGUSR1)
        print(f'Opening "{name}"')
        return EXIT_OK

    print(f'Starting xnote with "{name}"')
    subprocess.Popen(
        [*config.app.command, "--open", name],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return EXIT_OK


def cmd_export(args: argparse.Namespace, config: XnoteConfig) -> int:
    bridge = Bridge(AppContext(config))
    result = bridge.export_markdown(
        args.name,
        lambda default_name: args.path or default_name,
        with_frontmatter=args.frontmatter,
    )
    if result.get("success"):
        print(f"Exported to {result['path']}")
        return EXIT_OK
    if bridge.ctx.notes.get(args.name) is None:
        return _not_found(bridge.ctx.notes, args.name)
    print(f"Error: {result.get('error')}", file=sys.stderr)
    return EXIT_STORE_ERROR


async def _share(bridge: Bridge, args: argparse.Namespace, note: dict) -> dict:
    if args.delete:
        return await bridge.delete_gist(note["name"])
    if note.get("gistId"):
        result = await bridge.update_gist(note["name"])
        if result["outcome"] != "not_found":
            return result
        logger.info("Gist for %r is gone remotely, creating a new one", note["name"])
    return await bridge.create_gist(note["name"], public=args.public or None)


def cmd_share(args: argparse.Namespace, config: XnoteConfig) -> int:
    bridge = Bridge(AppContext(config))
    note = bridge.ctx.notes.get(args.name)
    if note is None:
        return _not_found(bridge.ctx.notes, args.name)

    try:
        result = asyncio.run(_share(bridge, args, note))
    except (StoreConflictError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_STORE_ERROR
    if not result["success"]:
        print(f"Error ({result['outcome']}): {result['error']}", file=sys.stderr)
        return EXIT_SHARE_FAILED

    if args.delete:
        print(f'Deleted gist for "{note["name"]}"')
    else:
        print(result["url"] or result["gistId"])
    return EXIT_OK


# ── Parser ───────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xnote", description="xnote CLI - Manage notes from command line"
    )
    parser.add_argument("--version", action="version", version="xnote 1.0.0")
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create", help="create note from stdin")
    p_create.add_argument("-n", "--name", help="note name (AI-generated if omitted)")
    p_create.add_argument("--force", action="store_true", help="overwrite existing note")
    p_create.set_defaults(func=cmd_create)

    p_get = sub.add_parser("get", help="output note content to stdout (markdown)")
    p_get.add_argument("name")
    fmt = p_get.add_mutually_exclusive_group()
    fmt.add_argument("--html", action="store_true", help="output raw HTML instead")
    fmt.add_argument("--json", action="store_true", help="output full note as JSON")
    p_get.set_defaults(func=cmd_get)

    p_list = sub.add_parser("list", help="list all notes")
    p_list.add_argument("--json", action="store_true", help="output as JSON")
    p_list.set_defaults(func=cmd_list)

    p_open = sub.add_parser("open", help="open note in the xnote app")
    p_open.add_argument("name")
    p_open.set_defaults(func=cmd_open)

    p_export = sub.add_parser("export", help="export note as a markdown file")
    p_export.add_argument("name")
    p_export.add_argument("path", nargs="?", help="target file (default: ./<name>.md)")
    p_export.add_argument("--frontmatter", action="store_true", help="add YAML front matter")
    p_export.set_defaults(func=cmd_export)

    p_share = sub.add_parser("share", help="create/update the note's GitHub gist")
    p_share.add_argument("name")
    p_share.add_argument("--public", action="store_true", help="create a public gist")
    p_share.add_argument("--delete", action="store_true", help="delete the note's gist")
    p_share.set_defaults(func=cmd_share)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(config.log_level)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
