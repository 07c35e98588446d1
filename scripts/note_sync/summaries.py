"""Summaries, categories and tags for notes, with fallbacks when the model is unavailable."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from .errors import ModelError, ModelUnavailable, NoteSyncError
from .heuristics import HeuristicSummarizer, naive_truncation
from .model import SummaryModel, SummaryPrompt, extract_json_object
from .notes import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    FALLBACK_CATEGORY,
    Note,
    NotePatch,
    count_words,
    sanitize_tags,
)

if TYPE_CHECKING:
    from .engine import NoteSyncEngine

logger = logging.getLogger(__name__)

RESOURCE_ROOT = Path(__file__).resolve().parent / "resources"
SUPPORTED_LANGUAGES = {"en", "pl"}
SENTIMENTS = ("positive", "neutral", "negative")
DEFAULT_SENTIMENT = "neutral"
DEFAULT_CONFIDENCE = 0.8
MAX_KEY_POINTS = 5
MAX_TAGS = 5
QUICK_CONTENT_LIMIT = 1000
SHORT_CONTENT_LIMIT = 500

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def load_resource(path: str, root: Path | None = None) -> str:
    """Load a text asset from the package resources directory."""

    trimmed = path.strip()
    if not trimmed:
        raise ValueError("Empty resource path")
    candidate = PurePosixPath(trimmed.lstrip("/"))
    if any(part == ".." for part in candidate.parts):
        raise ValueError(f"Invalid resource path: {path}")
    base = root or RESOURCE_ROOT
    target = base.joinpath(*candidate.parts)
    return target.read_text(encoding="utf-8")


def _render(template: str, **values: str) -> str:
    # single pass, so note text containing "{...}" is never expanded
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def _clip(content: str, limit: int) -> str:
    return content[:limit] + ("..." if len(content) > limit else "")


@dataclass(slots=True)
class Prompts:
    system: str
    detailed: str
    quick_system: str
    quick: str
    categorize: str
    tags: str
    title_template: str
    lengths: dict[str, str]
    styles: dict[str, str]

    @classmethod
    def for_locale(cls, locale: str, root: Path | None = None) -> "Prompts":
        language = locale.replace("_", "-").split("-")[0].lower()
        if language not in SUPPORTED_LANGUAGES:
            language = "en"

        def _load(name: str) -> str:
            return load_resource(f"prompts/{language}/{name}", root).strip()

        options = json.loads(_load("options.json"))
        return cls(
            system=_load("system.txt"),
            detailed=_load("detailed.txt"),
            quick_system=_load("quick_system.txt"),
            quick=_load("quick.txt"),
            categorize=_load("categorize.txt"),
            tags=_load("tags.txt"),
            title_template=str(options.get("title", "{title}")),
            lengths=dict(options.get("length", {})),
            styles=dict(options.get("style", {})),
        )

    def title_line(self, title: str | None) -> str:
        if not title or not title.strip():
            return ""
        return _render(self.title_template, title=title.strip())


class SummaryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class SummaryStyle(str, Enum):
    BULLET = "bullet"
    PARAGRAPH = "paragraph"
    KEYWORDS = "keywords"


@dataclass(frozen=True, slots=True)
class SummaryOptions:
    length: SummaryLength = SummaryLength.MEDIUM
    style: SummaryStyle = SummaryStyle.PARAGRAPH
    language: str | None = None


SUMMARY_PRESETS = {
    "quick": SummaryOptions(length=SummaryLength.SHORT, style=SummaryStyle.PARAGRAPH),
    "detailed": SummaryOptions(length=SummaryLength.LONG, style=SummaryStyle.BULLET),
    "keywords": SummaryOptions(length=SummaryLength.MEDIUM, style=SummaryStyle.KEYWORDS),
}


class SummarySource(str, Enum):
    MODEL = "model"
    HEURISTIC = "heuristic"


@dataclass(frozen=True, slots=True)
class SummaryResult:
    summary: str
    key_points: tuple[str, ...] = ()
    category: str = DEFAULT_CATEGORY
    sentiment: str = DEFAULT_SENTIMENT
    word_count: int = 0
    confidence: float = DEFAULT_CONFIDENCE
    source: SummarySource = SummarySource.MODEL

    def to_map(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "keyPoints": list(self.key_points),
            "category": self.category,
            "sentiment": self.sentiment,
            "wordCount": self.word_count,
            "confidence": self.confidence,
            "source": self.source.value,
        }


class RequestState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class SummaryRequest:
    kind: str
    state: RequestState = RequestState.IDLE
    error: str | None = None

    def _move(self, expected: RequestState, target: RequestState) -> None:
        if self.state is not expected:
            raise RuntimeError(f"Cannot move {self.kind} request from {self.state.value} to {target.value}")
        self.state = target

    def start(self) -> None:
        self._move(RequestState.IDLE, RequestState.REQUESTING)

    def succeed(self) -> None:
        self._move(RequestState.REQUESTING, RequestState.SUCCEEDED)

    def fail(self, error: str) -> None:
        self._move(RequestState.REQUESTING, RequestState.FAILED)
        self.error = error


@dataclass(slots=True)
class BatchReport:
    candidates: int = 0
    processed: int = 0
    failed: int = 0

    def to_map(self) -> dict[str, int]:
        return {"candidates": self.candidates, "processed": self.processed, "failed": self.failed}


def needs_summary(note: Note) -> bool:
    """Notes with no summary, or only the raw 100 character prefix, get one."""

    summary = (note.summary or "").strip()
    return not summary or note.summary == naive_truncation(note.content)


def _as_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return min(max(float(value), 0.0), 1.0)


def _match_category(value: str) -> str | None:
    cleaned = value.strip().strip("\"'`*.").strip()
    lowered = cleaned.lower()
    for category in CATEGORIES:
        if category.lower() == lowered:
            return category
    return None


class SummaryPipeline:
    """Calls the summary model and falls back to the heuristic summarizer.

    Nothing here raises to the caller on model trouble: an unconfigured model,
    a failed call or an unusable reply each map to a documented fallback value.
    """

    def __init__(
        self,
        model: SummaryModel | None,
        *,
        locale: str = "en",
        prompts_root: Path | None = None,
        batch_limit: int = 10,
        batch_delay: float = 0.0,
    ) -> None:
        self._model = model
        self.locale = locale
        self.prompts_root = prompts_root
        self.batch_limit = batch_limit
        self.batch_delay = batch_delay
        self.last_request: SummaryRequest | None = None
        self._prompts: dict[str, Prompts] = {}

    @property
    def available(self) -> bool:
        return self._model is not None and self._model.is_configured()

    def prompts(self, language: str | None = None) -> Prompts:
        key = (language or self.locale).lower()
        if key not in self._prompts:
            self._prompts[key] = Prompts.for_locale(key, self.prompts_root)
        return self._prompts[key]

    def _loaded_prompts(self, language: str | None = None) -> Prompts | None:
        try:
            return self.prompts(language)
        except (OSError, ValueError) as exc:
            logger.warning("Prompt resources for %s unavailable: %s", language or self.locale, exc)
            return None

    async def _ask(self, kind: str, prompt: SummaryPrompt) -> str:
        request = SummaryRequest(kind)
        self.last_request = request
        if self._model is None or not self._model.is_configured():
            raise ModelUnavailable("Summary model is not configured")
        request.start()
        try:
            text = await self._model.complete(prompt)
        except Exception as exc:
            request.fail(str(exc))
            if isinstance(exc, (ModelError, ModelUnavailable)):
                raise
            raise ModelError(str(exc)) from exc
        request.succeed()
        return text

    def _fallback_result(self, content: str) -> SummaryResult:
        summary = HeuristicSummarizer.generate(content)
        return SummaryResult(
            summary=summary,
            word_count=count_words(summary),
            source=SummarySource.HEURISTIC,
        )

    def _result_from(self, data: Mapping[str, Any], content: str) -> SummaryResult:
        raw_summary = data.get("summary")
        if isinstance(raw_summary, str) and raw_summary.strip():
            summary = raw_summary.strip()
            source = SummarySource.MODEL
            word_count = data.get("wordCount")
            if isinstance(word_count, bool) or not isinstance(word_count, int) or word_count <= 0:
                word_count = count_words(summary)
        else:
            summary = HeuristicSummarizer.generate(content)
            source = SummarySource.HEURISTIC
            word_count = count_words(summary)

        raw_points = data.get("keyPoints")
        key_points: list[str] = []
        if isinstance(raw_points, Sequence) and not isinstance(raw_points, str):
            key_points = sanitize_tags(raw_points)[:MAX_KEY_POINTS]

        raw_category = data.get("category")
        category = _match_category(raw_category) if isinstance(raw_category, str) else None

        raw_sentiment = data.get("sentiment")
        sentiment = raw_sentiment.strip().lower() if isinstance(raw_sentiment, str) else ""
        if sentiment not in SENTIMENTS:
            sentiment = DEFAULT_SENTIMENT

        return SummaryResult(
            summary=summary,
            key_points=tuple(key_points),
            category=category or DEFAULT_CATEGORY,
            sentiment=sentiment,
            word_count=word_count,
            confidence=_as_confidence(data.get("confidence")),
            source=source,
        )

    async def detailed_analysis(
        self,
        content: str,
        title: str | None = None,
        options: SummaryOptions | None = None,
    ) -> SummaryResult:
        options = options or SummaryOptions()
        if not content.strip():
            return self._fallback_result(content)
        if not self.available:
            logger.info("Summary model unavailable; using heuristic analysis")
            return self._fallback_result(content)

        prompts = self._loaded_prompts(options.language)
        if prompts is None:
            return self._fallback_result(content)
        user = _render(
            prompts.detailed,
            length=prompts.lengths.get(SummaryLength(options.length).value, ""),
            style=prompts.styles.get(SummaryStyle(options.style).value, ""),
            categories=", ".join(CATEGORIES),
            title=prompts.title_line(title),
            content=content,
        )
        prompt = SummaryPrompt(user=user, system=prompts.system, json_response=True)
        try:
            text = await self._ask("detailed", prompt)
        except (ModelError, ModelUnavailable) as exc:
            logger.warning("Detailed analysis failed, using heuristic: %s", exc)
            return self._fallback_result(content)

        try:
            data = extract_json_object(text)
        except ModelError as exc:
            logger.warning("Malformed analysis from model: %s", exc)
            data = {}
        return self._result_from(data, content)

    async def quick_summary(self, content: str, title: str | None = None) -> str:
        if not self.available or not content.strip():
            return HeuristicSummarizer.generate(content)
        prompts = self._loaded_prompts()
        if prompts is None:
            return HeuristicSummarizer.generate(content)
        prompt = SummaryPrompt(
            user=_render(prompts.quick, title=prompts.title_line(title), content=_clip(content, QUICK_CONTENT_LIMIT)),
            system=prompts.quick_system,
            max_tokens=100,
        )
        try:
            text = await self._ask("quick", prompt)
        except (ModelError, ModelUnavailable) as exc:
            logger.warning("Quick summary failed, using heuristic: %s", exc)
            return HeuristicSummarizer.generate(content)
        return text.strip() or HeuristicSummarizer.generate(content)

    async def categorize(self, content: str, title: str | None = None) -> str:
        if not self.available:
            return DEFAULT_CATEGORY
        prompts = self._loaded_prompts()
        if prompts is None:
            return FALLBACK_CATEGORY
        prompt = SummaryPrompt(
            user=_render(
                prompts.categorize,
                categories=", ".join(CATEGORIES),
                title=prompts.title_line(title),
                content=_clip(content, SHORT_CONTENT_LIMIT),
            ),
            temperature=0.1,
            max_tokens=20,
        )
        try:
            text = await self._ask("categorize", prompt)
        except (ModelError, ModelUnavailable) as exc:
            logger.warning("Categorization failed: %s", exc)
            return FALLBACK_CATEGORY
        return _match_category(text) or FALLBACK_CATEGORY

    async def generate_tags(self, content: str, title: str | None = None) -> list[str]:
        if not self.available:
            return []
        prompts = self._loaded_prompts()
        if prompts is None:
            return []
        prompt = SummaryPrompt(
            user=_render(prompts.tags, title=prompts.title_line(title), content=_clip(content, SHORT_CONTENT_LIMIT)),
            max_tokens=50,
        )
        try:
            text = await self._ask("tags", prompt)
        except (ModelError, ModelUnavailable) as exc:
            logger.warning("Tag generation failed: %s", exc)
            return []
        return sanitize_tags(part.strip().lstrip("#") for part in text.split(","))[:MAX_TAGS]

    async def batch_summarize(
        self,
        engine: "NoteSyncEngine",
        notes: Iterable[Note] | None = None,
        limit: int | None = None,
    ) -> BatchReport:
        """Summarize and categorize notes one at a time through ``engine.update``."""

        limit = self.batch_limit if limit is None else limit
        pending = [note for note in (notes if notes is not None else engine.state.ordered_notes()) if needs_summary(note)]
        report = BatchReport(candidates=len(pending))
        if not self.available:
            logger.warning("Summary model unavailable; skipping batch of %d notes", len(pending))
            return report

        for index, note in enumerate(pending[: max(limit, 0)]):
            if index and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            try:
                summary = await self.quick_summary(note.content, note.title)
                category = await self.categorize(note.content, note.title)
                updated = await engine.update(note.id, NotePatch(summary=summary, category=category))
            except NoteSyncError as exc:
                logger.warning("Failed to summarize note %s: %s", note.id, exc)
                report.failed += 1
                continue
            if updated is None:
                logger.warning("Failed to save summary for note %s", note.id)
                report.failed += 1
                continue
            report.processed += 1
        logger.info("Batch summary: %d processed, %d failed", report.processed, report.failed)
        return report


__all__ = [
    "BatchReport",
    "Prompts",
    "RequestState",
    "SUMMARY_PRESETS",
    "SummaryLength",
    "SummaryOptions",
    "SummaryPipeline",
    "SummaryRequest",
    "SummaryResult",
    "SummarySource",
    "SummaryStyle",
    "load_resource",
    "needs_summary",
]
