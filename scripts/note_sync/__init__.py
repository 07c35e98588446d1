"""Keep a user's notes in sync with Firestore and summarize them with an LLM."""

from .config import SyncConfig
from .engine import NoteSyncEngine
from .errors import (
    ModelError,
    ModelUnavailable,
    NoteNotFound,
    NoteSyncError,
    NoteValidationError,
    RemoteStoreError,
)
from .firebase import FirestoreNoteStore, initialize_firestore, resolve_user
from .heuristics import HeuristicSummarizer, generate_summary
from .model import LlmLogger, OpenRouterSummaryModel, SummaryModel, SummaryPrompt
from .notes import (
    CATEGORIES,
    Note,
    NoteDraft,
    NotePatch,
    UserSession,
    parse_remote_note,
)
from .state import Selection, SelectionMode, SyncState, SyncStatus
from .store import NoteDeleted, NoteInserted, NoteSubscription, NoteUpdated, RemoteNoteStore
from .summaries import (
    SUMMARY_PRESETS,
    BatchReport,
    SummaryOptions,
    SummaryPipeline,
    SummaryResult,
)
from .views import SortKey

__all__ = [
    "BatchReport",
    "CATEGORIES",
    "FirestoreNoteStore",
    "HeuristicSummarizer",
    "LlmLogger",
    "ModelError",
    "ModelUnavailable",
    "Note",
    "NoteDeleted",
    "NoteDraft",
    "NoteInserted",
    "NoteNotFound",
    "NotePatch",
    "NoteSubscription",
    "NoteSyncEngine",
    "NoteSyncError",
    "NoteUpdated",
    "NoteValidationError",
    "OpenRouterSummaryModel",
    "RemoteNoteStore",
    "RemoteStoreError",
    "SUMMARY_PRESETS",
    "Selection",
    "SelectionMode",
    "SortKey",
    "SummaryModel",
    "SummaryOptions",
    "SummaryPipeline",
    "SummaryPrompt",
    "SummaryResult",
    "SyncConfig",
    "SyncState",
    "SyncStatus",
    "UserSession",
    "generate_summary",
    "initialize_firestore",
    "parse_remote_note",
    "resolve_user",
]
