from __future__ import annotations

import asyncio
import copy
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import patch

from mdtranslator.ai.service import TranslateOptions, TranslationResult
from mdtranslator.config import DEFAULT_CONFIG
from mdtranslator.core import database as db
from mdtranslator.exceptions import ProviderError
from mdtranslator.translation.markers import MARKER_PATTERN, make_marker


def make_document(sections: List[List[str]], total_page: Optional[int] = None) -> Dict[str, Any]:
    return {
        "errCode": 0,
        "errMsg": "success",
        "data": {
            "total_page": total_page if total_page is not None else len(sections),
            "lang": None,
            "markdown": [
                {"markdown": list(paragraphs), "page": page + 1}
                for page, paragraphs in enumerate(sections)
            ],
        },
    }


def make_config(**translation_overrides: Any) -> Dict[str, Any]:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["openai"]["api_key"] = "sk-test"
    config["translation"].update(translation_overrides)
    return config


def echo_translation(payload: str) -> str:
    """Uppercase every paragraph of a payload while keeping its markers."""
    return MARKER_PATTERN.sub(lambda m: make_marker(int(m.group(1))), payload.upper())


Reply = Union[str, Exception, Callable[[str], str]]


class FakeAIService:
    """Scripted stand-in for AIService; replies are consumed one per call."""

    provider = "fake"

    def __init__(self, replies: Optional[List[Reply]] = None, default: Callable[[str], str] = echo_translation,
                 stream_steps: int = 2):
        self.replies = list(replies or [])
        self.default = default
        self.stream_steps = stream_steps
        self.calls: List[str] = []
        self.options: List[TranslateOptions] = []

    async def translate(self, text: str, options: TranslateOptions) -> TranslationResult:
        self.calls.append(text)
        self.options.append(options)
        reply: Reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        content = reply(text) if callable(reply) else reply
        token_count = max(1, len(content) // 4)
        if options.on_token_update:
            for step in range(1, self.stream_steps + 1):
                await options.on_token_update(token_count * step // self.stream_steps)
        return TranslationResult(content=content, token_count=token_count, model="fake-model", duration=0.0)


class HangingAIService(FakeAIService):
    """Never answers, so deadlines always expire."""

    async def translate(self, text: str, options: TranslateOptions) -> TranslationResult:
        self.calls.append(text)
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


class GatedAIService(FakeAIService):
    """Holds every call until the test opens the gate."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def translate(self, text: str, options: TranslateOptions) -> TranslationResult:
        self.started.set()
        await self.gate.wait()
        return await super().translate(text, options)


def provider_failure(message: str = "boom", code: str = "server_error") -> ProviderError:
    return ProviderError(message, code=code)


class TempDatabaseMixin:
    """Point the sqlite layer at a throwaway database for each test."""

    def setUp(self) -> None:
        super().setUp()
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmpdir.name) / "test.db"
        self._db_patch = patch.object(db, "DB_FILE", self.db_path)
        self._db_patch.start()

    def tearDown(self) -> None:
        self._db_patch.stop()
        self._tmpdir.cleanup()
        super().tearDown()
