from __future__ import annotations

import unittest
from unittest import mock

from scripts.note_sync.config import SyncConfig
from scripts.note_sync.errors import ModelError, ModelUnavailable
from scripts.note_sync.model import (
    LlmLogger,
    OpenRouterSummaryModel,
    SummaryPrompt,
    extract_json_object,
    extract_message_text,
)


class SyncConfigTest(unittest.TestCase):
    def test_defaults(self) -> None:
        config = SyncConfig.from_env({})
        self.assertEqual(config.api_key, "")
        self.assertEqual(config.model, OpenRouterSummaryModel.DEFAULT_MODEL)
        self.assertEqual(config.collection, "notes")
        self.assertEqual(config.locale, "en")
        self.assertEqual(config.batch_limit, 10)
        self.assertEqual(config.batch_delay, 0.0)

    def test_reads_environment(self) -> None:
        config = SyncConfig.from_env(
            {
                "OPENROUTER_API_KEY": " sk-test ",
                "NOTE_SYNC_MODEL": "openai/gpt-4o-mini",
                "NOTE_SYNC_COLLECTION": "user_notes",
                "NOTE_SYNC_LOCALE": "pl",
                "NOTE_SYNC_BATCH_LIMIT": "3",
                "NOTE_SYNC_BATCH_DELAY": "0.5",
            }
        )
        self.assertEqual(config.api_key, "sk-test")
        self.assertEqual(config.model, "openai/gpt-4o-mini")
        self.assertEqual(config.collection, "user_notes")
        self.assertEqual(config.locale, "pl")
        self.assertEqual(config.batch_limit, 3)
        self.assertEqual(config.batch_delay, 0.5)
        self.assertTrue(config.to_map()["apiKeyConfigured"])
        self.assertNotIn("sk-test", str(config.to_map()))

    def test_invalid_numbers_fall_back(self) -> None:
        config = SyncConfig.from_env({"NOTE_SYNC_BATCH_LIMIT": "many", "NOTE_SYNC_BATCH_DELAY": "-2"})
        self.assertEqual(config.batch_limit, 10)
        self.assertEqual(config.batch_delay, 0.0)


class ModelHelpersTest(unittest.TestCase):
    def test_extract_message_text(self) -> None:
        self.assertEqual(extract_message_text({"choices": [{"message": {"content": "hi"}}]}), "hi")
        parts = {"choices": [{"message": {"content": [{"text": "a"}, {"text": "b"}, {"image": "x"}]}}]}
        self.assertEqual(extract_message_text(parts), "ab")
        with self.assertRaises(ModelError):
            extract_message_text({"choices": []})

    def test_extract_json_object(self) -> None:
        self.assertEqual(extract_json_object('noise {"a": {"b": 1}} trailing'), {"a": {"b": 1}})
        with self.assertRaises(ModelError):
            extract_json_object("no json here")
        with self.assertRaises(ModelError):
            extract_json_object("{not: valid}")

    def test_llm_logger_keeps_recent_entries(self) -> None:
        logger = LlmLogger(max_entries=2)
        for index in range(3):
            logger.log(f"req{index}", f"res{index}")
        entries = logger.entries()
        self.assertEqual(len(entries), 2)
        self.assertTrue(entries[0].startswith("REQUEST: req1"))


class OpenRouterSummaryModelTest(unittest.IsolatedAsyncioTestCase):
    def test_build_payload(self) -> None:
        model = OpenRouterSummaryModel("key", model="custom/model")
        payload = model.build_payload(SummaryPrompt(user="u", system="s", json_response=True, max_tokens=50))
        self.assertEqual(payload["model"], "custom/model")
        self.assertEqual(
            payload["messages"],
            [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}],
        )
        self.assertEqual(payload["max_tokens"], 50)
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertNotIn("response_format", model.build_payload(SummaryPrompt(user="u")))

    async def test_unconfigured_model_raises(self) -> None:
        model = OpenRouterSummaryModel("  ")
        self.assertFalse(model.is_configured())
        with self.assertRaises(ModelUnavailable):
            await model.complete(SummaryPrompt(user="u"))

    async def test_complete_logs_exchange(self) -> None:
        model = OpenRouterSummaryModel("key")
        response = {"choices": [{"message": {"content": "Summary."}}]}
        with mock.patch.object(OpenRouterSummaryModel, "_post", return_value=response) as post:
            text = await model.complete(SummaryPrompt(user="Summarize this"))
        self.assertEqual(text, "Summary.")
        self.assertEqual(post.call_args.args[0]["model"], OpenRouterSummaryModel.DEFAULT_MODEL)
        self.assertIn("Summarize this", model.logger.entries()[0])


if __name__ == "__main__":
    unittest.main()
