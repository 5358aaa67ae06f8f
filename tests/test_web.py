from __future__ import annotations

import unittest
from unittest.mock import patch

import mdtranslator.config as config
from mdtranslator.web import create_app, tasks
from tests.support import (
    FakeAIService,
    TempDatabaseMixin,
    echo_translation,
    make_config,
    make_document,
    provider_failure,
)

JOB_TIMEOUT = 10


def two_page_document():
    paragraphs = [f"para number {i:02d}." for i in range(6)]
    return make_document([paragraphs[:4], paragraphs[4:]])


class WebTestCase(TempDatabaseMixin, unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        tasks.reset()
        self.app = create_app()
        self.client = self.app.test_client()
        config.save_config(make_config(max_context_tokens=8))

        self.ai = FakeAIService()
        patcher = patch.object(tasks, "build_ai_service", return_value=self.ai)
        self.build_ai_service = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        tasks.reset()
        super().tearDown()

    def start_and_wait(self, translation_id: str, path_suffix: str = "", **body):
        response = self.client.post(f"/api/translations/{translation_id}{path_suffix}", json=body)
        self.assertEqual(response.status_code, 202, response.get_json())
        job = tasks.wait_for_job(response.get_json()["job_id"], timeout=JOB_TIMEOUT)
        self.assertIsNotNone(job)
        return job


class HealthTests(WebTestCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.get_json(), {"status": "ok"})

    def test_unknown_route_is_json_404(self) -> None:
        response = self.client.get("/api/nothing-here")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["code"], "not_found")


class SettingsRouteTests(WebTestCase):
    def test_get_settings_includes_meta(self) -> None:
        payload = self.client.get("/api/settings/").get_json()
        self.assertEqual(payload["config"]["openai"]["api_key"], "sk-test")
        self.assertEqual([p["id"] for p in payload["meta"]["builtin_providers"]],
                         ["openai", "anthropic", "custom"])
        self.assertEqual(payload["meta"]["log_modes"], ["off", "info", "debug"])

    def test_update_settings_merges_sections(self) -> None:
        response = self.client.put("/api/settings/", json={
            "config": {"translation": {"target_language": "fr", "max_context_tokens": 1024}},
        })
        self.assertEqual(response.status_code, 200)

        saved = config.load_config()
        self.assertEqual(saved["translation"]["target_language"], "fr")
        self.assertEqual(saved["translation"]["max_context_tokens"], 1024)
        self.assertEqual(saved["openai"]["api_key"], "sk-test")

    def test_invalid_settings_are_rejected(self) -> None:
        cases = [
            {"log_mode": "verbose"},
            {"translation": {"max_context_tokens": 0}},
            {"translation": {"target_language": "xx-YY"}},
            {"translation": {"safe_token_margin": -1}},
            {"rate_limit": {"window_ms": "soon"}},
            {"my provider": {"api_url": "https://example.com"}},
            {"local": {"models": "llama"}},
        ]
        for new_config in cases:
            with self.subTest(config=new_config):
                response = self.client.put("/api/settings/", json={"config": new_config})
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["code"], "invalid_config")

        missing = self.client.put("/api/settings/", json={})
        self.assertEqual(missing.get_json()["code"], "invalid_request")

    def test_custom_provider_section_is_accepted(self) -> None:
        response = self.client.put("/api/settings/", json={"config": {
            "local-llm": {"type": "custom", "api_key": "k", "models": ["llama3"],
                          "api_url": "http://localhost:8080/v1/chat/completions"},
        }})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(config.load_config()["local-llm"]["models"], ["llama3"])


class DocumentRouteTests(WebTestCase):
    def test_register_document(self) -> None:
        response = self.client.post("/api/documents/doc", json={
            "document": two_page_document(),
            "url": "https://example.com/doc.pdf",
        })
        payload = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(payload["needs_translation"])
        self.assertEqual(payload["estimated_tokens"], 24)

    def test_register_requires_document_object(self) -> None:
        response = self.client.post("/api/documents/doc", json={"document": "text"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["code"], "invalid_request")


class TranslationRouteTests(WebTestCase):
    def test_translate_document_end_to_end(self) -> None:
        job = self.start_and_wait("doc", document=two_page_document(), target_language="es")

        self.assertEqual(job.state, "completed", job.error)
        self.assertEqual(len(self.ai.calls), 3)
        self.assertEqual(self.ai.options[0].target_language, "es")
        self.assertTrue(any(p["phase"] == "completed" for p in job.progress_history))

        record = self.client.get("/api/translations/doc").get_json()
        self.assertEqual(record["status"], "completed")
        translated = record["translated_document"]["data"]
        self.assertEqual(translated["lang"], "es")
        self.assertEqual(translated["markdown"][1]["markdown_lang"], ["PARA NUMBER 04.\n\n", "PARA NUMBER 05.\n\n"])

        progress = self.client.get("/api/translations/doc/progress").get_json()
        self.assertEqual(progress["percentage"], 100.0)
        self.assertEqual(progress["job"]["state"], "completed")

        history = self.client.get("/api/translations").get_json()["translations"]
        self.assertEqual([h["id"] for h in history], ["doc"])

        job_status = self.client.get(f"/api/translations/jobs/{job.job_id}").get_json()
        self.assertEqual(job_status["result"]["status"], "completed")

    def test_completed_translation_is_served_from_cache(self) -> None:
        self.start_and_wait("doc", document=two_page_document())

        response = self.client.post("/api/translations/doc", json={})
        payload = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(payload["cached"])
        self.assertEqual(len(self.ai.calls), 3)

    def test_failed_job_resumes_through_retry(self) -> None:
        self.ai.replies = [echo_translation, provider_failure("upstream exploded")]
        failed = self.start_and_wait("doc", document=two_page_document())

        self.assertEqual(failed.state, "failed")
        self.assertEqual(failed.error_code, "server_error")
        self.assertEqual(failed.result["completed_batches"], 1)

        progress = self.client.get("/api/translations/doc/progress").get_json()
        self.assertEqual(progress["status"], "failed")
        self.assertEqual((progress["completed_batches"], progress["total_batches"]), (1, 3))
        self.assertEqual(self.client.get("/api/translations/doc").status_code, 404)

        retry_ai = FakeAIService()
        self.build_ai_service.return_value = retry_ai
        retried = self.start_and_wait("doc", path_suffix="/retry")

        self.assertEqual(retried.state, "completed", retried.error)
        self.assertEqual(len(retry_ai.calls), 2)

    def test_provider_model_pair_is_split(self) -> None:
        self.start_and_wait("doc", document=two_page_document(), ai_provider="openai:gpt-4o")
        self.build_ai_service.assert_called_with("openai", "gpt-4o")

    def test_start_rejects_bad_requests(self) -> None:
        unknown = self.client.post("/api/translations/missing", json={})
        self.assertEqual(unknown.status_code, 404)

        bad_language = self.client.post("/api/translations/doc", json={
            "document": two_page_document(), "target_language": "klingon"})
        self.assertEqual(bad_language.get_json()["code"], "invalid_language")

        empty = self.client.post("/api/translations/doc", json={"document": make_document([[" "]])})
        self.assertEqual(empty.status_code, 202)
        job = tasks.wait_for_job(empty.get_json()["job_id"], timeout=JOB_TIMEOUT)
        self.assertEqual((job.state, job.error_code), ("failed", "planning_failed"))

    def test_missing_api_key_is_reported(self) -> None:
        config.save_config(config.DEFAULT_CONFIG)
        response = self.client.post("/api/translations/doc", json={"document": two_page_document()})
        payload = response.get_json()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(payload["code"], "ai_config_missing")
        self.assertEqual(payload["details"]["missing_field"], "api_key")
        self.assertEqual(self.ai.calls, [])

    def test_not_found_responses(self) -> None:
        self.assertEqual(self.client.get("/api/translations/nope").status_code, 404)
        self.assertEqual(self.client.get("/api/translations/nope/progress").status_code, 404)
        self.assertEqual(self.client.get("/api/translations/jobs/abc").status_code, 404)
        cancel = self.client.post("/api/translations/nope/cancel")
        self.assertEqual((cancel.status_code, cancel.get_json()["code"]), (404, "not_running"))

    def test_delete_and_clear(self) -> None:
        self.start_and_wait("a", document=make_document([["Hello"]]))
        self.start_and_wait("b", document=make_document([["World"]]))

        self.assertEqual(self.client.delete("/api/translations/a").get_json(), {"deleted": "a"})
        self.assertEqual(self.client.get("/api/translations/a").status_code, 404)
        self.assertEqual(len(self.client.get("/api/translations").get_json()["translations"]), 1)

        self.client.delete("/api/translations")
        self.assertEqual(self.client.get("/api/translations").get_json()["translations"], [])


if __name__ == "__main__":
    unittest.main()
