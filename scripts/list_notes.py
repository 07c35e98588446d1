#!/usr/bin/env python3
"""List a user's notes stored in Firestore, optionally following live changes.

Usage examples::

    python -m scripts.list_notes service_account.json USER_ID
    python -m scripts.list_notes service_account.json USER_ID --query meeting --sort title --json
    python -m scripts.list_notes service_account.json USER_ID --watch 60

The command connects using a Firebase service account, loads the user's notes
through the sync engine and prints them. ``--search`` asks the store to match
title and content; ``--query`` filters the loaded notes locally (title,
content and summary). ``--watch`` keeps a push subscription open for the given
number of seconds and prints every change it delivers.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import locale
import logging
import sys
from typing import Iterable

from google.api_core.exceptions import GoogleAPIError
from firebase_admin import exceptions as firebase_exceptions

from scripts.note_sync import (
    FirestoreNoteStore,
    Note,
    NoteSyncEngine,
    RemoteStoreError,
    SortKey,
    SyncConfig,
    SyncState,
    UserSession,
    initialize_firestore,
    resolve_user,
)
from scripts.note_sync.notes import truncate_text


class ScriptError(RuntimeError):
    """Raised when the listing script encounters a fatal issue."""


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("service_account", help="Path to the Firebase service account JSON key")
    parser.add_argument("user_id", help="Firebase Auth UID whose notes should be listed")
    parser.add_argument(
        "--project-id",
        dest="project_id",
        help="Override the Firebase project ID if the key omits it",
    )
    parser.add_argument(
        "--collection",
        help="Firestore collection holding the notes (default: NOTE_SYNC_COLLECTION or 'notes')",
    )
    parser.add_argument(
        "--trust-uid",
        action="store_true",
        help="Skip the Firebase Auth lookup and use the UID as given",
    )
    parser.add_argument("--query", default="", help="Filter loaded notes by title, content or summary")
    parser.add_argument("--search", help="Run a store-side search instead of listing all notes")
    parser.add_argument(
        "--sort",
        choices=[key.value for key in SortKey],
        default=SortKey.NEWEST.value,
        help="Sort order (default: %(default)s)",
    )
    parser.add_argument("--limit", type=int, default=None, help="Print at most this many notes")
    parser.add_argument(
        "--watch",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Keep listening for remote changes for this many seconds",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON instead of formatted text",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


def configure_collation() -> None:
    """Use the user's locale for title ordering; the C locale is kept if it is unusable."""

    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logging.debug("Keeping default collation: %s", exc)


def _format_note_text(note: Note) -> str:
    details = [f"created_at={note.created_at.isoformat()}"]
    if note.updated_at != note.created_at:
        details.append(f"updated_at={note.updated_at.isoformat()}")
    if note.category:
        details.append(f"category={note.category}")
    if note.tags:
        details.append(f"tags={', '.join(note.tags)}")
    lines = [f"{note.title} ({note.id})", f"  {', '.join(details)}"]
    if note.summary:
        lines.append(f"  Summary: {truncate_text(note.summary, 120)}")
    else:
        lines.append(f"  Content: {truncate_text(note.content.replace(chr(10), ' '), 120)}")
    return "\n".join(lines)


def _print_notes(notes: list[Note], as_json: bool) -> None:
    if as_json:
        json.dump([note.to_map() for note in notes], sys.stdout, indent=2, sort_keys=True, ensure_ascii=False)
        sys.stdout.write("\n")
        return
    if not notes:
        print("No notes found.")
        return
    for index, note in enumerate(notes):
        if index:
            print()
        print(_format_note_text(note))


def _change_printer(initial: SyncState, as_json: bool):
    previous = {"notes": dict(initial.notes)}

    def on_change(state: SyncState) -> None:
        before = previous["notes"]
        after = dict(state.notes)
        previous["notes"] = after
        for note_id, note in after.items():
            if note_id not in before:
                _emit("inserted", note, as_json)
            elif before[note_id] != note:
                _emit("updated", note, as_json)
        for note_id in before:
            if note_id not in after:
                _emit("deleted", note_id, as_json)

    return on_change


def _emit(kind: str, value: Note | str, as_json: bool) -> None:
    if as_json:
        payload = {"event": kind, "note": value.to_map() if isinstance(value, Note) else {"id": value}}
        print(json.dumps(payload, sort_keys=True, ensure_ascii=False), flush=True)
    elif isinstance(value, Note):
        print(f"[{kind}] {value.title} ({value.id})", flush=True)
    else:
        print(f"[{kind}] {value}", flush=True)


def _session(args: argparse.Namespace) -> UserSession:
    if args.trust_uid:
        return UserSession(user_id=args.user_id)
    return resolve_user(args.user_id)


async def _run(args: argparse.Namespace, config: SyncConfig) -> None:
    try:
        client = initialize_firestore(args.service_account, args.project_id)
    except FileNotFoundError as exc:
        raise ScriptError(str(exc)) from exc
    store = FirestoreNoteStore(client, collection=args.collection or config.collection)
    engine = NoteSyncEngine(store, _session(args))
    try:
        if args.watch:
            async with engine.live_updates():
                await _list(engine, args)
                remove = engine.add_listener(_change_printer(engine.state, args.json))
                logging.info("Watching for changes for %.0f seconds", args.watch)
                await asyncio.sleep(args.watch)
                remove()
        else:
            await _list(engine, args)
    finally:
        engine.on_session_end()


async def _list(engine: NoteSyncEngine, args: argparse.Namespace) -> None:
    if args.search:
        notes = await engine.search(args.search)
    else:
        await engine.load()
        notes = engine.view(args.query, args.sort)
    if engine.state.last_error:
        raise RemoteStoreError(engine.state.last_error)
    if args.limit:
        notes = notes[: args.limit]
    _print_notes(notes, args.json)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    configure_collation()
    try:
        asyncio.run(_run(args, SyncConfig.from_env()))
    except ScriptError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (RemoteStoreError, firebase_exceptions.FirebaseError, GoogleAPIError) as exc:
        print(f"Firebase error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
