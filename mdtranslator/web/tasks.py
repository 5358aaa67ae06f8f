"""
Asynchronous task helpers for long-running background jobs (translations).

Every translation runs as a coroutine on one background asyncio event loop
thread, so all jobs share a single cooperative scheduler, one RateLimiter
and one ProgressTracker (held by the shared TranslationManager). Flask
request threads hand work to that loop with run_coroutine_threadsafe.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field, asdict
from typing import Any, Coroutine, Dict, List, Optional

from mdtranslator.ai.service import AIService
from mdtranslator.config import load_config
from mdtranslator.core.store import DocumentStore
from mdtranslator.exceptions import BatchTranslationError, TranslationCancelled, TranslationError
from mdtranslator.logger import get_logger
from mdtranslator.translation.manager import TranslationManager
from mdtranslator.translation.progress import ProgressEvent

logger = get_logger(__name__)

_SYNC_CALL_TIMEOUT = 30


@dataclass
class JobState:
    """In-memory representation of an asynchronous job."""

    job_id: str
    translation_id: str
    mode: str = "translate"  # translate|retry
    target_language: Optional[str] = None
    model_override: Optional[str] = None  # Optional specific model to use
    ai_provider: Optional[str] = None  # AI provider for this job
    state: str = "pending"  # pending|running|completed|failed|cancelled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    progress_history: List[Dict[str, Any]] = field(default_factory=list)  # History of all progress events
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    last_update: float = field(default_factory=time.time)

    @property
    def is_finished(self) -> bool:
        return self.state in ("completed", "failed", "cancelled")

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key in ("created_at", "started_at", "finished_at", "last_update"):
            if payload.get(key) is not None:
                payload[key] = float(payload[key])
        return payload


_jobs: Dict[str, JobState] = {}
_futures: Dict[str, Future] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion

_loop: Optional[asyncio.AbstractEventLoop] = None
_loop_thread: Optional[threading.Thread] = None
_loop_lock = threading.Lock()
_manager: Optional[TranslationManager] = None


# ============================================================
# Event loop and shared manager
# ============================================================

def get_loop() -> asyncio.AbstractEventLoop:
    """Return the background event loop, starting its thread on first use."""
    global _loop, _loop_thread
    with _loop_lock:
        if _loop is None or _loop.is_closed():
            _loop = asyncio.new_event_loop()
            _loop_thread = threading.Thread(
                target=_loop.run_forever,
                name="translation-event-loop",
                daemon=True,
            )
            _loop_thread.start()
            logger.info("Background translation event loop started")
        return _loop


def run_sync(coro: Coroutine, timeout: float = _SYNC_CALL_TIMEOUT) -> Any:
    """Run a coroutine on the background loop and wait for its result."""
    return asyncio.run_coroutine_threadsafe(coro, get_loop()).result(timeout=timeout)


def get_manager() -> TranslationManager:
    """The process-wide TranslationManager (created on first use)."""
    global _manager
    with _loop_lock:
        if _manager is None:
            config = load_config()
            _manager = TranslationManager(
                store=DocumentStore(max_retries=config.get('storage', {}).get('max_retries', 3)),
                ai_service=AIService(config),
                config=config,
                on_progress=_dispatch_progress,
            )
        return _manager


def apply_settings(config: Dict[str, Any]) -> None:
    """Push saved settings to the shared manager."""
    with _loop_lock:
        manager = _manager
    if manager is not None:
        manager.update_config(config)
        manager.ai_service = AIService(config)


def reset() -> None:
    """Forget the shared manager and all job state (used after a factory reset)."""
    global _manager
    with _loop_lock:
        _manager = None
    with _jobs_lock:
        _jobs.clear()
        _futures.clear()


def build_ai_service(provider: Optional[str] = None, model: Optional[str] = None) -> AIService:
    """AI service for one job, honoring per-job provider and model overrides."""
    return AIService(load_config(), model_override=model, provider_override=provider)


# ============================================================
# Jobs
# ============================================================

def create_translation_job(
    translation_id: str,
    mode: str = "translate",
    target_language: Optional[str] = None,
    model_override: Optional[str] = None,
    ai_provider: Optional[str] = None,
) -> JobState:
    """
    Create and launch an asynchronous translation job.

    Args:
        translation_id: Id of a registered source document.
        mode: "translate" or "retry".
        target_language: Optional target language override.
        model_override: Optional specific model to use instead of default.
        ai_provider: Optional provider to use instead of default.

    Returns:
        JobState for the new job (already registered and scheduled on the loop).
    """
    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        translation_id=translation_id,
        mode=mode,
        target_language=target_language,
        model_override=model_override,
        ai_provider=ai_provider,
    )
    ai_service = build_ai_service(ai_provider, model_override)

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state
        _futures[job_id] = asyncio.run_coroutine_threadsafe(
            _run_translation_job(job_state, ai_service), get_loop())

    logger.info(
        "Translation job %s started for %s (mode=%s, target=%s)",
        job_id,
        translation_id,
        mode,
        target_language or "default",
    )
    return job_state


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            _jobs.pop(job_id, None)
            _futures.pop(job_id, None)
            return None
        return job


def get_latest_job(translation_id: str) -> Optional[JobState]:
    """Get the latest job (including finished ones) for a translation id."""
    with _jobs_lock:
        jobs = [job for job in _jobs.values() if job.translation_id == translation_id]
        if not jobs:
            return None
        return max(jobs, key=lambda j: j.created_at)


def wait_for_job(job_id: str, timeout: Optional[float] = None) -> Optional[JobState]:
    """Block until a job has finished; returns its final state."""
    with _jobs_lock:
        future = _futures.get(job_id)
    if future is not None:
        future.result(timeout=timeout)
    return get_job(job_id)


def cancel_translation(translation_id: str) -> bool:
    """
    Request cancellation of the running translation of an id.

    Returns:
        True if a run was found and signalled, False otherwise.
    """
    manager = get_manager()

    async def _cancel() -> bool:
        return manager.cancel(translation_id)

    return run_sync(_cancel())


def _dispatch_progress(event: ProgressEvent) -> None:
    """Record a manager progress event on the matching running job."""
    with _jobs_lock:
        running = [
            job for job in _jobs.values()
            if job.translation_id == event.translation_id and job.state == "running"
        ]
        if not running:
            return
        job = max(running, key=lambda j: j.created_at)
        serialized = event.to_dict()
        job.progress = serialized
        job.progress_history.append(serialized)
        job.last_update = time.time()


def _finish(job: JobState, state: str, result: Optional[Dict[str, Any]] = None,
            error: Optional[str] = None, error_code: Optional[str] = None) -> None:
    with _jobs_lock:
        job.state = state
        job.result = result
        job.error = error
        job.error_code = error_code
        job.finished_at = time.time()
        job.last_update = job.finished_at


async def _run_translation_job(job: JobState, ai_service: AIService) -> None:
    """Worker coroutine executed on the background loop."""
    with _jobs_lock:
        job.state = "running"
        job.started_at = time.time()
        job.last_update = job.started_at

    manager = get_manager()
    runner = manager.retry if job.mode == "retry" else manager.translate
    try:
        record = await runner(
            job.translation_id,
            target_language=job.target_language,
            model=job.model_override,
            ai_service=ai_service,
        )
    except TranslationCancelled as exc:
        _finish(job, "cancelled", result=exc.details)
        logger.info("Translation job %s cancelled", job.job_id)
    except BatchTranslationError as exc:
        _finish(job, "failed", result=exc.details, error=str(exc), error_code=exc.code)
        logger.error("Translation job %s failed at batch %s/%s: %s",
                     job.job_id, exc.batch_index + 1, exc.total_batches, exc)
    except TranslationError as exc:
        _finish(job, "failed", result=exc.details, error=str(exc), error_code=exc.code)
        logger.error("Translation job %s failed: %s", job.job_id, exc)
    except Exception as exc:
        error_type = type(exc).__name__
        _finish(job, "failed", error=f"{error_type}: {exc}", error_code="internal_error")
        logger.exception(
            "Translation job %s failed for %s: %s: %s",
            job.job_id,
            job.translation_id,
            error_type,
            exc,
        )
    else:
        meta = record.get("meta") or {}
        _finish(job, "completed", result={
            "status": record.get("status"),
            "token_count": meta.get("token_count"),
            "duration": meta.get("duration"),
        })
        logger.info("Translation job %s finished (tokens=%s)", job.job_id, meta.get("token_count"))


def _cleanup_jobs_locked():
    """Remove completed jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _jobs.pop(job_id, None)
        _futures.pop(job_id, None)
