#!/usr/bin/env python3
"""Generate AI summaries and categories for a user's notes via the OpenRouter API."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Iterable

from google.api_core.exceptions import GoogleAPIError
from firebase_admin import exceptions as firebase_exceptions

from scripts.note_sync import (
    SUMMARY_PRESETS,
    FirestoreNoteStore,
    LlmLogger,
    NotePatch,
    NoteSyncEngine,
    OpenRouterSummaryModel,
    RemoteStoreError,
    SummaryPipeline,
    SyncConfig,
    UserSession,
    initialize_firestore,
    resolve_user,
)
from scripts.note_sync.notes import sanitize_tags
from scripts.note_sync.summaries import needs_summary


class ScriptError(RuntimeError):
    """Raised when the summarization script encounters a fatal issue."""


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("service_account", help="Path to the Firebase service account JSON key")
    parser.add_argument("user_id", help="Firebase Auth UID whose notes should be summarized")
    parser.add_argument(
        "--project-id",
        dest="project_id",
        help="Override the Firebase project ID if the key omits it",
    )
    parser.add_argument("--collection", help="Firestore collection holding the notes")
    parser.add_argument(
        "--trust-uid",
        action="store_true",
        help="Skip the Firebase Auth lookup and use the UID as given",
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="Explicit OpenRouter API key (defaults to OPENROUTER_API_KEY)",
    )
    parser.add_argument("--model", help="Override the OpenRouter model id")
    parser.add_argument("--locale", help="Prompt language (en or pl)")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of notes to process (default: NOTE_SYNC_BATCH_LIMIT or 10)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between notes (default: NOTE_SYNC_BATCH_DELAY or 0)",
    )
    parser.add_argument(
        "--analyze",
        metavar="NOTE_ID",
        help="Run a detailed analysis of a single note instead of a batch",
    )
    parser.add_argument(
        "--preset",
        choices=sorted(SUMMARY_PRESETS),
        default="detailed",
        help="Summary preset used with --analyze (default: %(default)s)",
    )
    update_group = parser.add_mutually_exclusive_group()
    update_group.add_argument(
        "--apply",
        action="store_true",
        help="With --analyze, save the summary, category and key points back to Firestore",
    )
    update_group.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="List the notes a batch would process without calling the model",
    )
    parser.add_argument(
        "--show-logs",
        action="store_true",
        help="Print the captured LLM request/response logs",
    )
    return parser.parse_args(argv)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s: %(message)s",
    )


def _config(args: argparse.Namespace) -> SyncConfig:
    config = SyncConfig.from_env()
    if args.api_key:
        config.api_key = args.api_key.strip()
    if args.model:
        config.model = args.model
    if args.locale:
        config.locale = args.locale
    if args.collection:
        config.collection = args.collection
    if args.limit is not None:
        config.batch_limit = max(args.limit, 0)
    if args.delay is not None:
        config.batch_delay = max(args.delay, 0.0)
    return config


async def _analyze(
    engine: NoteSyncEngine,
    pipeline: SummaryPipeline,
    note_id: str,
    preset: str,
    apply: bool,
) -> dict:
    note = engine.state.notes.get(note_id)
    if note is None:
        raise ScriptError(f"Note '{note_id}' not found")
    result = await pipeline.detailed_analysis(note.content, note.title, SUMMARY_PRESETS[preset])
    payload = {"note": note.id, "analysis": result.to_map()}
    if apply:
        tags = sanitize_tags(list(note.tags or ()) + list(result.key_points))
        updated = await engine.update(
            note.id,
            NotePatch(summary=result.summary, category=result.category, tags=tags),
        )
        if updated is None:
            raise RemoteStoreError(engine.state.last_error or f"Failed to save note '{note_id}'")
        payload["saved"] = updated.to_map()
    return payload


async def _run(args: argparse.Namespace, config: SyncConfig, llm_logger: LlmLogger) -> dict:
    try:
        client = initialize_firestore(args.service_account, args.project_id)
    except FileNotFoundError as exc:
        raise ScriptError(str(exc)) from exc

    session = UserSession(user_id=args.user_id) if args.trust_uid else resolve_user(args.user_id)
    engine = NoteSyncEngine(FirestoreNoteStore(client, collection=config.collection), session)
    model = OpenRouterSummaryModel(
        config.api_key,
        model=config.model,
        base_url=config.base_url,
        logger=llm_logger,
    )
    pipeline = SummaryPipeline(
        model,
        locale=config.locale,
        batch_limit=config.batch_limit,
        batch_delay=config.batch_delay,
    )
    try:
        if not await engine.load():
            raise RemoteStoreError(engine.state.last_error or "Failed to load notes")
        if args.analyze:
            return await _analyze(engine, pipeline, args.analyze, args.preset, args.apply)
        if args.dry_run:
            pending = [note.id for note in engine.state.ordered_notes() if needs_summary(note)]
            return {"pending": pending[: config.batch_limit], "candidates": len(pending)}
        if not pipeline.available:
            raise ScriptError("OpenRouter API key is required (set --api-key or OPENROUTER_API_KEY)")
        report = await pipeline.batch_summarize(engine)
        return report.to_map()
    finally:
        engine.on_session_end()


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    llm_logger = LlmLogger()
    try:
        output = asyncio.run(_run(args, _config(args), llm_logger))
    except ScriptError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except (RemoteStoreError, firebase_exceptions.FirebaseError, GoogleAPIError) as exc:
        print(f"Firebase error: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(output, indent=2, ensure_ascii=False))
    if args.show_logs:
        print("\n=== LLM Logs ===")
        for entry in llm_logger.entries():
            print(entry)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
