"""Offline summary used when no model output is available."""

from __future__ import annotations

import re

from .notes import truncate_text

_SENTENCE_BREAK = re.compile(r"[.!?]+")

MIN_SENTENCE_LENGTH = 20
MAX_SENTENCE_LENGTH = 200
TRUNCATE_LENGTH = 100


class HeuristicSummarizer:
    """First sentence when it has a sensible length, a truncated prefix otherwise.

    The output depends only on the input string; notes created without an AI
    summary store it verbatim, so it must stay stable.
    """

    @staticmethod
    def generate(content: str) -> str:
        first_sentence = _SENTENCE_BREAK.split(content, maxsplit=1)[0].strip()
        if MIN_SENTENCE_LENGTH < len(first_sentence) <= MAX_SENTENCE_LENGTH:
            return first_sentence + "."
        return truncate_text(content, TRUNCATE_LENGTH)


def generate_summary(content: str) -> str:
    return HeuristicSummarizer.generate(content)


def naive_truncation(content: str) -> str:
    """The placeholder summary older clients stored: a raw 100 character prefix."""

    return content[:TRUNCATE_LENGTH] + "..."


__all__ = ["HeuristicSummarizer", "generate_summary", "naive_truncation"]
