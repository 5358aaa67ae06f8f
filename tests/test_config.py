from __future__ import annotations

import unittest

import mdtranslator.config as config
from mdtranslator.core import database as db
from tests.support import TempDatabaseMixin


class ConfigTests(TempDatabaseMixin, unittest.TestCase):
    def test_defaults_are_written_on_first_start(self) -> None:
        config.initialize_app()
        loaded = config.load_config()
        self.assertEqual(loaded["ai_provider"], "openai")
        self.assertEqual(loaded["translation"]["target_language"], config.DEFAULT_TARGET_LANGUAGE)
        self.assertIsNotNone(db.get_app_config("config"))

    def test_saved_config_is_merged_with_defaults(self) -> None:
        config.initialize_app()
        config.save_config({"ai_provider": "anthropic", "translation": {"max_context_tokens": 512}})

        loaded = config.load_config()
        self.assertEqual(loaded["ai_provider"], "anthropic")
        self.assertEqual(loaded["translation"]["max_context_tokens"], 512)
        self.assertEqual(loaded["translation"]["request_timeout"], 300)
        self.assertIn("rate_limit", loaded)

    def test_unreadable_config_falls_back_to_defaults(self) -> None:
        config.initialize_app()
        db.set_app_config("config", "{not json")
        self.assertEqual(config.load_config(), config.DEFAULT_CONFIG)

    def test_factory_reset_restores_defaults(self) -> None:
        config.initialize_app()
        config.save_config(dict(config.DEFAULT_CONFIG, ai_provider="custom"))
        db.put_document("translations", "doc", {"id": "doc"})

        config.factory_reset()

        self.assertEqual(config.load_config()["ai_provider"], "openai")
        self.assertIsNone(db.get_document("translations", "doc"))

    def test_prompts_name_the_target_language_and_markers(self) -> None:
        system_prompt = config.get_prompt("system_prompt")["prompt"]
        self.assertIn("{target_language_name}", system_prompt)
        self.assertIn("MDT_PARA", config.get_prompt("user_prompt")["prompt"])
        self.assertIs(config.get_prompt("missing"), config.DEFAULT_PROMPTS["user_prompt"])


if __name__ == "__main__":
    unittest.main()
