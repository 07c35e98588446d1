"""Summary model adapters backed by the OpenRouter chat completions API."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

from .errors import ModelError, ModelUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1/chat/completions"


@dataclass(frozen=True, slots=True)
class SummaryPrompt:
    user: str
    system: str | None = None
    temperature: float = 0.3
    max_tokens: int = 500
    json_response: bool = False

    def messages(self) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.user})
        return messages


@runtime_checkable
class SummaryModel(Protocol):
    def is_configured(self) -> bool:
        ...

    async def complete(self, prompt: SummaryPrompt) -> str:
        """Return the raw text of the model's reply; may raise ``ModelError``."""
        ...


@dataclass(slots=True)
class LlmLogger:
    max_entries: int = 100
    _entries: list[str] = field(default_factory=list)

    def log(self, request: str, response: str) -> None:
        entry = f"REQUEST: {request}\nRESPONSE: {response}"
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            del self._entries[0]

    def entries(self) -> list[str]:
        return list(self._entries)


def extract_message_text(response: Mapping[str, Any]) -> str:
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ModelError("LLM response missing choices")
    message = choices[0].get("message") if isinstance(choices[0], Mapping) else None
    content: Any
    if isinstance(message, Mapping):
        content = message.get("content")
    else:
        content = None
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, Mapping) and isinstance(part.get("text"), str)
        )
    if isinstance(content, str):
        return content
    raise ModelError("LLM response missing content")


def extract_json_object(text: str) -> Mapping[str, Any]:
    """Pull the outermost JSON object out of a model reply."""

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ModelError("LLM content did not include JSON object")
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ModelError(f"Invalid JSON from model: {exc}") from exc
    if not isinstance(parsed, Mapping):
        raise ModelError("LLM content did not include JSON object")
    return parsed


class OpenRouterSummaryModel:
    """Chat completion client; unconfigured when no API key is set."""

    DEFAULT_MODEL = "mistralai/mistral-nemo"

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        attempts: int = 3,
        logger: LlmLogger | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = (model or "").strip() or self.DEFAULT_MODEL
        self.base_url = base_url
        self.timeout = timeout
        self.attempts = max(attempts, 1)
        self.logger = logger or LlmLogger()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, prompt: SummaryPrompt) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": prompt.messages(),
            "temperature": prompt.temperature,
            "max_tokens": prompt.max_tokens,
        }
        if prompt.json_response:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(self, prompt: SummaryPrompt) -> str:
        if not self.is_configured():
            raise ModelUnavailable("OpenRouter API key is not configured")
        payload = self.build_payload(prompt)
        response = await asyncio.to_thread(self._post, payload)
        text = extract_message_text(response)
        self.logger.log(json.dumps(payload, ensure_ascii=False), text)
        return text

    def _post(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self.base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            method="POST",
        )

        last_error: Exception | None = None
        for attempt in range(self.attempts):
            try:
                with urllib.request.urlopen(request, timeout=self.timeout) as response:
                    body = response.read()
                    text = body.decode("utf-8", errors="replace")
                    parsed = json.loads(text)
                    if not isinstance(parsed, Mapping):
                        raise ModelError("OpenRouter returned a non-object response")
                    return parsed
            except (urllib.error.HTTPError, urllib.error.URLError, TimeoutError, json.JSONDecodeError) as exc:
                last_error = exc
                if attempt == self.attempts - 1:
                    break
                logger.info("OpenRouter request failed (attempt %d): %s", attempt + 1, exc)
                time.sleep(2 ** attempt)
        raise ModelError(f"OpenRouter request failed: {last_error}")


__all__ = [
    "DEFAULT_BASE_URL",
    "LlmLogger",
    "OpenRouterSummaryModel",
    "SummaryModel",
    "SummaryPrompt",
    "extract_json_object",
    "extract_message_text",
]
