"""Environment-driven settings for the note sync tools."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

from .firebase import DEFAULT_COLLECTION
from .model import DEFAULT_BASE_URL, OpenRouterSummaryModel


def _parse_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _parse_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


@dataclass(slots=True)
class SyncConfig:
    api_key: str = ""
    model: str = OpenRouterSummaryModel.DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    collection: str = DEFAULT_COLLECTION
    locale: str = "en"
    batch_limit: int = 10
    batch_delay: float = 0.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_key=env.get("OPENROUTER_API_KEY", "").strip(),
            model=env.get("NOTE_SYNC_MODEL", "").strip() or defaults.model,
            base_url=env.get("NOTE_SYNC_BASE_URL", "").strip() or defaults.base_url,
            collection=env.get("NOTE_SYNC_COLLECTION", "").strip() or defaults.collection,
            locale=env.get("NOTE_SYNC_LOCALE", "").strip() or defaults.locale,
            batch_limit=max(_parse_int(env.get("NOTE_SYNC_BATCH_LIMIT"), defaults.batch_limit), 0),
            batch_delay=max(_parse_float(env.get("NOTE_SYNC_BATCH_DELAY"), defaults.batch_delay), 0.0),
        )

    def to_map(self) -> dict[str, Any]:
        return {
            "apiKeyConfigured": bool(self.api_key),
            "model": self.model,
            "baseUrl": self.base_url,
            "collection": self.collection,
            "locale": self.locale,
            "batchLimit": self.batch_limit,
            "batchDelay": self.batch_delay,
        }


__all__ = ["SyncConfig"]
