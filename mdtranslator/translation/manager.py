"""
Translation Manager Module

Main TranslationManager class that coordinates the translation workflow:
- Register source documents and report whether they need translating
- Plan batches and translate them one by one through the AI service
- Re-align each response to its paragraphs (markers + fallback ladder)
- Persist batch progress after every batch so a failed run resumes
- Assemble and store the translated document

Per translation id the run moves through

    PLANNING -> (TRANSLATING -> ALIGNING -> PERSISTING) per batch -> COMPLETED

and ends in FAILED or CANCELLED when a batch fails or the run is cancelled.
Batches of one id are strictly sequential; different ids may run
concurrently on the same event loop and share one RateLimiter.
"""

import asyncio
import inspect
import time
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from mdtranslator.ai.service import TranslateOptions
from mdtranslator.config import load_config, DEFAULT_TARGET_LANGUAGE
from mdtranslator.core.store import CONTENTS, TRANSLATIONS, LIVE_PROGRESS, DocumentStore
from mdtranslator.exceptions import (
    AlignmentDegraded,
    BatchTranslationError,
    ProviderError,
    ProviderTimeoutError,
    TranslationCancelled,
    TranslationError,
    TranslationNotFound,
)
from mdtranslator.logger import get_logger
from mdtranslator.translation.document import (
    Paragraph,
    assemble_translated_document,
    clean_empty_paragraphs,
    content_hash,
    extract_markdown_text,
    flatten_document,
)
from mdtranslator.translation.fallback import FallbackLevel, resolve_fallback
from mdtranslator.translation.markers import decode_batch, encode_batch, strip_stray_markers
from mdtranslator.translation.planner import Batch, plan_batches
from mdtranslator.translation.progress import BatchProgress, ProgressEvent
from mdtranslator.translation.rate_limiter import RateLimiter
from mdtranslator.translation.tracker import ProgressTracker, calculate_percentage

logger = get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"


class TranslationState(str, Enum):
    PLANNING = "planning"
    TRANSLATING = "translating"
    ALIGNING = "aligning"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ActiveTranslation:
    """Registry entry of an in-flight run."""
    cancel_event: asyncio.Event
    state: TranslationState = TranslationState.PLANNING
    progress: Optional[BatchProgress] = None


def format_paragraph(text: str) -> str:
    """Normalize one translated paragraph for storage; leading indentation is kept."""
    return text.lstrip("\r\n").rstrip() + "\n\n"


class TranslationManager:
    """
    Manages resumable batch translations of paginated Markdown documents.

    Collaborators are injected so several managers (or tests) can share or
    replace them:
    - store: DocumentStore holding sources, translation records, live progress
    - ai_service: object with ``async translate(text, TranslateOptions)``
    - rate_limiter: RateLimiter shared by every translation of the process
    - tracker: in-memory ProgressTracker
    - on_progress: optional (sync or async) sink for ProgressEvent
    """

    def __init__(
        self,
        store: DocumentStore,
        ai_service: Any,
        rate_limiter: Optional[RateLimiter] = None,
        tracker: Optional[ProgressTracker] = None,
        config: Optional[Dict[str, Any]] = None,
        on_progress: Optional[Callable[[ProgressEvent], Any]] = None,
    ):
        self.config = config if config is not None else load_config()
        self.store = store
        self.ai_service = ai_service
        self.rate_limiter = rate_limiter or RateLimiter.from_config(self.config)
        self.tracker = tracker or ProgressTracker.from_config(self.config)
        self.on_progress = on_progress
        self.translation_config = self.config.get('translation', {})
        self._active: Dict[str, ActiveTranslation] = {}

    def update_config(self, config: Dict[str, Any]) -> None:
        """Apply new settings to runs started from now on."""
        self.config = config
        self.translation_config = config.get('translation', {})

    # ============================================================
    # Source documents
    # ============================================================

    async def register_source(self, translation_id: str, document: Dict[str, Any],
                              url: Optional[str] = None) -> Dict[str, Any]:
        """
        Store a cleaned source document and report whether it needs translating.

        Raises:
            PlanningError: If the document is malformed.
        """
        cleaned = clean_empty_paragraphs(document)
        text_info = extract_markdown_text(cleaned)
        doc_hash = content_hash(cleaned)

        await self.store.put(CONTENTS, translation_id, {
            "id": translation_id,
            "url": url,
            "document": cleaned,
            "content_hash": doc_hash,
            "estimated_tokens": text_info["estimated_tokens"],
            "created_at": time.time(),
        })

        record = await self.store.get(TRANSLATIONS, translation_id)
        status = record.get("status") if record else None
        needs_translation = status != STATUS_COMPLETED and not self.is_active(translation_id)
        logger.info(f"Registered source {translation_id} ({text_info['estimated_tokens']} estimated tokens, "
                    f"status: {status or 'new'})")
        return {
            "translation_id": translation_id,
            "needs_translation": needs_translation,
            "estimated_tokens": text_info["estimated_tokens"],
            "status": status,
            "content_hash": doc_hash,
        }

    async def get_source(self, translation_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(CONTENTS, translation_id)

    async def _load_source(self, translation_id: str) -> Dict[str, Any]:
        source = await self.get_source(translation_id)
        if not source:
            raise TranslationNotFound(f"No source document registered for {translation_id}")
        return source

    # ============================================================
    # Queries
    # ============================================================

    async def check_translation(self, translation_id: str) -> Optional[Dict[str, Any]]:
        """Return the translation record if it is completed, else None."""
        record = await self.store.get(TRANSLATIONS, translation_id)
        if record and record.get("status") == STATUS_COMPLETED:
            return record
        return None

    async def get_translation(self, translation_id: str) -> Dict[str, Any]:
        record = await self.check_translation(translation_id)
        if record is None:
            raise TranslationNotFound(f"No completed translation for {translation_id}")
        return record

    async def get_history(self) -> List[Dict[str, Any]]:
        """Summaries of every translation record, newest first."""
        history = []
        for record in await self.store.list(TRANSLATIONS):
            meta = dict(record.get("meta") or {})
            batch_progress = meta.pop("batch_progress", None) or {}
            history.append({
                "id": record.get("id"),
                "url": record.get("url"),
                "status": record.get("status"),
                "meta": meta,
                "completed_batches": batch_progress.get("completed_batch_count", 0),
                "total_batches": batch_progress.get("total_batch_count", 0),
                "error": record.get("error"),
                "updated_at": record.get("updated_at"),
            })
        return history

    async def get_realtime_progress(self, translation_id: str) -> Optional[Dict[str, Any]]:
        """
        Current progress of a translation.

        Active runs answer from the in-memory tracker. Otherwise the durable
        batch progress (and the last throttled live snapshot) is used.
        """
        live = self.tracker.get(translation_id)
        active = self._active.get(translation_id)
        if live:
            snapshot = live.to_dict()
            progress = active.progress if active else None
            snapshot.update({
                "status": STATUS_PENDING,
                "state": active.state.value if active else None,
                "completed_batches": progress.completed_batch_count if progress else 0,
                "total_batches": progress.total_batch_count if progress else 0,
                "source": "memory",
            })
            return snapshot

        record = await self.store.get(TRANSLATIONS, translation_id)
        if not record:
            return None
        meta = record.get("meta") or {}
        progress = BatchProgress.from_dict(meta.get("batch_progress")) or BatchProgress()
        estimated = meta.get("estimated_token_count", 0)
        total_tokens = progress.total_tokens or meta.get("token_count", 0)

        status = record.get("status")
        if status == STATUS_PENDING:
            persisted_live = await self.store.get(LIVE_PROGRESS, translation_id)
            if persisted_live:
                total_tokens = max(total_tokens, persisted_live.get("total_tokens", 0))

        percentage = 100.0 if status == STATUS_COMPLETED else calculate_percentage(total_tokens, estimated)
        return {
            "translation_id": translation_id,
            "status": status,
            "state": None,
            "total_tokens": total_tokens,
            "estimated_total_tokens": estimated,
            "percentage": percentage,
            "tokens_per_second": 0.0,
            "estimated_remaining_ms": 0.0,
            "completed_batches": progress.completed_batch_count,
            "total_batches": progress.total_batch_count,
            "source": "storage",
        }

    # ============================================================
    # Deletion
    # ============================================================

    async def delete_translation(self, translation_id: str) -> None:
        """Delete a translation record, its progress and its source document."""
        self.cancel(translation_id)
        self._active.pop(translation_id, None)
        for namespace in (TRANSLATIONS, LIVE_PROGRESS, CONTENTS):
            await self.store.delete(namespace, translation_id)
        self.tracker.discard(translation_id)
        logger.info(f"Deleted translation {translation_id}")

    async def discard_progress(self, translation_id: str) -> None:
        """Forget all progress of a translation; the next run starts from batch 0."""
        await self.store.delete(TRANSLATIONS, translation_id)
        await self.store.delete(LIVE_PROGRESS, translation_id)
        self.tracker.discard(translation_id)
        logger.info(f"Discarded progress of {translation_id}")

    async def clear_all(self) -> None:
        for translation_id in list(self._active):
            self.cancel(translation_id)
        self._active.clear()
        await self.store.clear()
        for translation_id in self.tracker.active_ids():
            self.tracker.discard(translation_id)
        logger.warning("Cleared all translations")

    # ============================================================
    # Active translation registry
    # ============================================================

    def is_active(self, translation_id: str) -> bool:
        return translation_id in self._active

    def cancel(self, translation_id: str) -> bool:
        """Signal an in-flight run to stop. Returns False when none is running."""
        active = self._active.get(translation_id)
        if not active:
            return False
        active.cancel_event.set()
        logger.info(f"Cancellation requested for {translation_id}")
        return True

    def _register_active(self, translation_id: str, cancel_event: Optional[asyncio.Event]) -> ActiveTranslation:
        previous = self._active.get(translation_id)
        if previous:
            logger.warning(f"Translation {translation_id} is already running, cancelling the previous run")
            previous.cancel_event.set()
        active = ActiveTranslation(cancel_event=cancel_event or asyncio.Event())
        self._active[translation_id] = active
        return active

    def _unregister_active(self, translation_id: str, active: ActiveTranslation) -> None:
        if self._active.get(translation_id) is active:
            del self._active[translation_id]

    def _is_superseded(self, translation_id: str, active: ActiveTranslation) -> bool:
        """True once a newer run or a deletion replaced this run; it must not write anymore."""
        return self._active.get(translation_id) is not active

    def _set_state(self, translation_id: str, active: ActiveTranslation, state: TranslationState) -> None:
        active.state = state
        logger.debug(f"[{translation_id}] -> {state.value}")

    # ============================================================
    # Orchestration
    # ============================================================

    async def translate(
        self,
        translation_id: str,
        document: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        target_language: Optional[str] = None,
        model: Optional[str] = None,
        url: Optional[str] = None,
        ai_service: Any = None,
    ) -> Dict[str, Any]:
        """
        Translate a document, resuming from persisted progress when possible.

        Args:
            translation_id: Id of the translation (and of its source document)
            document: Source document; when omitted the registered source is used
            cancel_event: Optional event checked before each batch and each provider call
            target_language: Overrides translation.target_language
            model: Overrides the provider's default model
            ai_service: Translation capability for this run (defaults to the manager's)

        Returns:
            The completed translation record (cached if it already existed)

        Raises:
            PlanningError: Malformed or empty document, before any provider call
            BatchTranslationError: A batch failed; progress was persisted first
            TranslationCancelled: The run was cancelled
            TranslationNotFound: No document given and none registered
            PersistenceError: Progress could not be stored
        """
        cached = await self.check_translation(translation_id)
        if cached:
            logger.info(f"Translation {translation_id} already completed, returning cached result")
            return cached

        if document is not None:
            await self.register_source(translation_id, document, url=url)
        source = await self._load_source(translation_id)

        active = self._register_active(translation_id, cancel_event)
        try:
            return await self._run(translation_id, source, active, target_language, model,
                                   ai_service or self.ai_service)
        finally:
            self._unregister_active(translation_id, active)

    async def retry(self, translation_id: str, **kwargs) -> Dict[str, Any]:
        """Re-run a failed or cancelled translation from its stored source."""
        await self._load_source(translation_id)
        record = await self.store.get(TRANSLATIONS, translation_id)
        if record and record.get("status") != STATUS_COMPLETED:
            batch_progress = (record.get("meta") or {}).get("batch_progress") or {}
            logger.info(f"Retrying {translation_id} from batch "
                        f"{batch_progress.get('completed_batch_count', 0) + 1}")
        return await self.translate(translation_id, **kwargs)

    async def _run(
        self,
        translation_id: str,
        source: Dict[str, Any],
        active: ActiveTranslation,
        target_language: Optional[str],
        model: Optional[str],
        ai_service: Any,
    ) -> Dict[str, Any]:
        self._set_state(translation_id, active, TranslationState.PLANNING)
        document = source["document"]
        target_language = target_language or self.translation_config.get('target_language', DEFAULT_TARGET_LANGUAGE)

        paragraphs = flatten_document(document)
        batches = plan_batches(
            paragraphs,
            self.translation_config.get('max_context_tokens', 2048),
            self.translation_config.get('safe_token_margin', 0),
        )
        doc_hash = source.get("content_hash") or content_hash(document)
        estimated_tokens = sum(p.estimated_tokens for p in paragraphs)

        record = await self.store.get(TRANSLATIONS, translation_id) or {}
        progress = self._resume_progress(translation_id, record, doc_hash, len(batches))
        active.progress = progress

        record.update({
            "id": translation_id,
            "url": source.get("url"),
            "status": STATUS_PENDING,
            "error": None,
        })
        meta = record.setdefault("meta", {})
        meta.update({
            "provider": getattr(ai_service, "provider", None),
            "model": model,
            "target_language": target_language,
            "estimated_token_count": estimated_tokens,
            "content_hash": doc_hash,
        })
        if self._is_superseded(translation_id, active):
            await self._check_cancelled(translation_id, active, record, progress)
        await self._save_record(translation_id, record, progress)

        logger.info(f"Translating {translation_id}: {len(paragraphs)} paragraphs in {len(batches)} batches "
                    f"(starting at batch {progress.completed_batch_count + 1}, target: {target_language})")
        self.tracker.start(translation_id, estimated_tokens, resume_tokens=progress.total_tokens)
        start_time = time.time()

        try:
            for batch in batches[progress.completed_batch_count:]:
                await self._check_cancelled(translation_id, active, record, progress)
                await self._translate_batch(translation_id, active, batch, record, progress,
                                            target_language, model, ai_service)
        except BaseException:
            if not self._is_superseded(translation_id, active):
                self.tracker.discard(translation_id)
            raise

        return await self._complete(translation_id, active, document, record, progress,
                                    target_language, time.time() - start_time)

    def _resume_progress(self, translation_id: str, record: Dict[str, Any], doc_hash: str,
                         total_batches: int) -> BatchProgress:
        progress = BatchProgress.from_dict((record.get("meta") or {}).get("batch_progress"))
        if progress and progress.content_hash != doc_hash:
            logger.warning(f"Source of {translation_id} changed since the last run, discarding saved progress")
            progress = None
        elif progress and progress.total_batch_count != total_batches:
            logger.warning(f"Batch plan of {translation_id} changed ({progress.total_batch_count} -> "
                           f"{total_batches} batches), discarding saved progress")
            progress = None

        if progress is None:
            return BatchProgress(total_batch_count=total_batches, content_hash=doc_hash)
        if progress.completed_batch_count:
            logger.info(f"Resuming {translation_id}: {progress.completed_batch_count}/{total_batches} "
                        f"batches already done")
        return progress

    async def _translate_batch(
        self,
        translation_id: str,
        active: ActiveTranslation,
        batch: Batch,
        record: Dict[str, Any],
        progress: BatchProgress,
        target_language: str,
        model: Optional[str],
        ai_service: Any,
    ) -> None:
        self._set_state(translation_id, active, TranslationState.TRANSLATING)
        total_batches = progress.total_batch_count
        logger.info(f"[{translation_id}] Batch {batch.index + 1}/{total_batches}: {batch.describe()}")

        base_tokens = progress.total_tokens
        streamed_tokens = 0

        async def on_token_update(count: int) -> None:
            nonlocal streamed_tokens
            streamed_tokens = count
            if self._is_superseded(translation_id, active):
                return
            self.tracker.update(translation_id, base_tokens + count)
            if self.tracker.should_persist(translation_id):
                snapshot = self.tracker.get(translation_id)
                if snapshot:
                    await self.store.put(LIVE_PROGRESS, translation_id, snapshot.to_dict())

        payload = encode_batch(batch.paragraphs)
        deadline = self.translation_config.get('request_timeout')
        options = TranslateOptions(
            target_language=target_language,
            model=model,
            max_tokens=self.translation_config.get('max_tokens'),
            temperature=self.translation_config.get('temperature'),
            on_token_update=on_token_update,
            timeout=deadline,
        )

        if not await self.rate_limiter.acquire(active.cancel_event):
            await self._check_cancelled(translation_id, active, record, progress)

        failure: Optional[TranslationError] = None
        try:
            try:
                result = await asyncio.wait_for(ai_service.translate(payload, options), timeout=deadline)
            except asyncio.TimeoutError as e:
                raise ProviderTimeoutError(
                    f"Batch {batch.index + 1} exceeded its {deadline}s deadline",
                    details={"batch_index": batch.index},
                ) from e
        except TranslationError as e:
            failure = e
        except Exception as e:
            logger.exception(f"[{translation_id}] Unexpected error from the translation provider")
            failure = ProviderError(
                f"Unexpected {type(e).__name__} from the translation provider: {e}",
                code="provider_error",
                details={"batch_index": batch.index},
            )
            failure.__cause__ = e

        # A run cancelled or superseded during the call drops whatever the call produced
        await self._check_cancelled(translation_id, active, record, progress)
        if failure is not None:
            await self._fail(translation_id, active, batch, record, progress, failure)

        self._set_state(translation_id, active, TranslationState.ALIGNING)
        translations, level = self._align(translation_id, batch, result.content)

        self._set_state(translation_id, active, TranslationState.PERSISTING)
        tokens = getattr(result, "token_count", 0) or streamed_tokens
        progress.record_attempt(translations, tokens, succeeded=True, batch_index=batch.index)
        if getattr(result, "model", None):
            record["meta"]["model"] = result.model
        await self._save_record(translation_id, record, progress)
        self.tracker.update(translation_id, progress.total_tokens)

        await self._emit(ProgressEvent(
            translation_id=translation_id,
            batch_index=batch.index,
            total_batches=total_batches,
            total_tokens=progress.total_tokens,
            fallback_level=level.name,
        ))

    def _align(self, translation_id: str, batch: Batch, content: str):
        """Map a response back onto the batch's paragraph keys."""
        if batch.size == 1:
            paragraph: Paragraph = batch.paragraphs[0]
            text = strip_stray_markers(content or "")
            if text:
                return {paragraph.key: format_paragraph(text)}, FallbackLevel.PERFECT
            logger.error(f"[{translation_id}] Empty response for {paragraph.key}, preserving original text")
            return {paragraph.key: format_paragraph(paragraph.text)}, FallbackLevel.COMPLETE_FAILURE

        extraction = decode_batch(content, batch.size)
        fallback = resolve_fallback(extraction, batch.texts, content)
        if fallback.degraded:
            message = (f"[{translation_id}] Batch {batch.index + 1} aligned at {fallback.level.name} level "
                       f"({fallback.missing_count}/{fallback.total_count} markers missing): {fallback.strategy}")
            logger.warning(message)
            warnings.warn(message, AlignmentDegraded, stacklevel=2)
        else:
            logger.debug(f"[{translation_id}] Batch {batch.index + 1}: {fallback.strategy}")

        translations = {
            paragraph.key: format_paragraph(text)
            for paragraph, text in zip(batch.paragraphs, fallback.paragraphs)
        }
        return translations, fallback.level

    async def _check_cancelled(self, translation_id: str, active: ActiveTranslation,
                               record: Dict[str, Any], progress: BatchProgress) -> None:
        superseded = self._is_superseded(translation_id, active)
        if not active.cancel_event.is_set() and not superseded:
            return
        self._set_state(translation_id, active, TranslationState.CANCELLED)
        if superseded:
            logger.info(f"[{translation_id}] Run was superseded, stopping without writing its state")
            raise TranslationCancelled(translation_id, progress.completed_batch_count, progress.total_batch_count)

        logger.info(f"[{translation_id}] Cancelled after {progress.completed_batch_count}/"
                    f"{progress.total_batch_count} batches")
        record["status"] = STATUS_CANCELLED
        await self._save_record(translation_id, record, progress)
        await self._emit(ProgressEvent(
            translation_id=translation_id,
            batch_index=progress.completed_batch_count,
            total_batches=progress.total_batch_count,
            total_tokens=progress.total_tokens,
            phase="cancelled",
        ))
        raise TranslationCancelled(translation_id, progress.completed_batch_count, progress.total_batch_count)

    async def _fail(self, translation_id: str, active: ActiveTranslation, batch: Batch,
                    record: Dict[str, Any], progress: BatchProgress, error: TranslationError) -> None:
        if self._is_superseded(translation_id, active):
            await self._check_cancelled(translation_id, active, record, progress)
        self._set_state(translation_id, active, TranslationState.FAILED)
        logger.error(f"[{translation_id}] Batch {batch.index + 1}/{progress.total_batch_count} failed: {error}")

        record["status"] = STATUS_FAILED
        record["error"] = {
            "message": str(error),
            "code": error.code or "provider_error",
            "batch_index": batch.index,
            "completed_batches": progress.completed_batch_count,
            "total_batches": progress.total_batch_count,
        }
        await self._save_record(translation_id, record, progress)
        await self._emit(ProgressEvent(
            translation_id=translation_id,
            batch_index=batch.index,
            total_batches=progress.total_batch_count,
            total_tokens=progress.total_tokens,
            phase="failed",
            error=str(error),
        ))
        raise BatchTranslationError(
            translation_id,
            batch.index,
            progress.completed_batch_count,
            progress.total_batch_count,
            error,
        ) from error

    async def _complete(
        self,
        translation_id: str,
        active: ActiveTranslation,
        document: Dict[str, Any],
        record: Dict[str, Any],
        progress: BatchProgress,
        target_language: str,
        duration: float,
    ) -> Dict[str, Any]:
        if self._is_superseded(translation_id, active):
            await self._check_cancelled(translation_id, active, record, progress)
        record["translated_document"] = assemble_translated_document(
            document, progress.translated_paragraphs, target_language)
        record["status"] = STATUS_COMPLETED
        record["error"] = None
        record["meta"].update({
            "token_count": progress.total_tokens,
            "duration": duration,
            "translated_at": time.time(),
        })
        await self._save_record(translation_id, record, progress)
        await self.store.delete(LIVE_PROGRESS, translation_id)

        self.tracker.complete(translation_id, progress.total_tokens)
        self._set_state(translation_id, active, TranslationState.COMPLETED)
        logger.info(f"Translation {translation_id} completed: {progress.total_batch_count} batches, "
                    f"{progress.total_tokens} tokens in {duration:.1f}s")

        await self._emit(ProgressEvent(
            translation_id=translation_id,
            batch_index=max(0, progress.total_batch_count - 1),
            total_batches=progress.total_batch_count,
            total_tokens=progress.total_tokens,
            phase="completed",
        ))
        return record

    async def _save_record(self, translation_id: str, record: Dict[str, Any], progress: BatchProgress) -> None:
        record["meta"]["batch_progress"] = progress.to_dict()
        record["updated_at"] = time.time()
        await self.store.put(TRANSLATIONS, translation_id, record)

    async def _emit(self, event: ProgressEvent) -> None:
        if self.on_progress is None:
            return
        result = self.on_progress(event)
        if inspect.isawaitable(result):
            await result
