"""
Async key-value document store.

Wraps the sqlite CRUD helpers in core/database.py behind a get/put/delete
interface addressed by (namespace, id). Calls run in a worker thread so the
translation event loop only suspends on storage I/O. Writes are retried with
exponential backoff before a PersistenceError surfaces.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mdtranslator.core import database as db
from mdtranslator.core.schema import initialize_database
from mdtranslator.exceptions import PersistenceError
from mdtranslator.logger import get_logger

logger = get_logger(__name__)

CONTENTS = "contents"
TRANSLATIONS = "translations"
LIVE_PROGRESS = "live_progress"

ALL_NAMESPACES = (CONTENTS, TRANSLATIONS, LIVE_PROGRESS)


class DocumentStore:
    """Document store over the application sqlite database."""

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 0.2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep
        initialize_database()

    async def get(self, namespace: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(db.get_document, namespace, doc_id)

    async def list(self, namespace: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(db.list_documents, namespace)

    async def put(self, namespace: str, doc_id: str, body: Dict[str, Any]) -> None:
        await self._write(f"put {namespace}/{doc_id}", db.put_document, namespace, doc_id, body)

    async def delete(self, namespace: str, doc_id: str) -> None:
        await self._write(f"delete {namespace}/{doc_id}", db.delete_document, namespace, doc_id)

    async def clear(self) -> None:
        for namespace in ALL_NAMESPACES:
            await self._write(f"clear {namespace}", db.clear_namespace, namespace)

    async def _write(self, label: str, func, *args) -> None:
        last_error = None
        for attempt in range(self.max_retries):
            try:
                await asyncio.to_thread(func, *args)
                return
            except Exception as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(f"Storage {label} failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                                   f"Retrying in {wait_time:.2f}s")
                    await self._sleep(wait_time)

        logger.error(f"Storage {label} failed after {self.max_retries} attempts: {last_error}")
        raise PersistenceError(
            f"Storage {label} failed after {self.max_retries} attempts: {last_error}",
            details={"operation": label},
        ) from last_error
