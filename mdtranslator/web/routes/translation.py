"""Translation management API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from mdtranslator.config import load_config
from mdtranslator.exceptions import PlanningError, ProviderError, TranslationNotFound
from mdtranslator.logger import get_logger
import mdtranslator.language_codes as lc
from mdtranslator.ai.service import validate_ai_config
from mdtranslator.web.tasks import (
    cancel_translation,
    create_translation_job,
    get_job,
    get_latest_job,
    get_manager,
    run_sync,
)

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)


def _error(message: str, code: str, status: int, details: Dict[str, Any] = None):
    payload = {"error": message, "code": code}
    if details:
        payload["details"] = details
    return jsonify(payload), status


@translation_bp.post("/documents/<translation_id>")
def register_document(translation_id: str):
    """Store a source document and report whether it needs translating."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    document = data.get("document")
    if not isinstance(document, dict):
        return _error("Request body must contain a 'document' object", "invalid_request", 400)

    try:
        result = run_sync(get_manager().register_source(translation_id, document, url=data.get("url")))
    except PlanningError as e:
        logger.warning("Rejected document %s: %s", translation_id, e)
        return _error(str(e), e.code, 400, e.details)
    return jsonify(result)


def _start_job(translation_id: str, mode: str):
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    target_language = data.get("target_language")
    model_override = data.get("model")
    ai_provider = data.get("ai_provider") or None

    # Parse ai_provider if it's in "provider:model" format
    if ai_provider and isinstance(ai_provider, str) and ":" in ai_provider:
        ai_provider, model_from_provider = ai_provider.split(":", 1)
        if model_override is None and model_from_provider:
            model_override = model_from_provider

    if target_language is not None:
        if not lc.is_valid_language_code(target_language):
            return _error(f"Invalid target language: {target_language}", "invalid_language", 400)
        target_language = lc.normalize_language_code(target_language)

    try:
        validate_ai_config(load_config(), provider_override=ai_provider)
    except ProviderError as e:
        logger.warning("AI configuration validation failed: %s", e)
        return _error(str(e), e.code or "ai_config_error", 400, e.details)

    manager = get_manager()
    document = data.get("document")
    try:
        if isinstance(document, dict):
            run_sync(manager.register_source(translation_id, document, url=data.get("url")))
        cached = run_sync(manager.check_translation(translation_id))
    except PlanningError as e:
        return _error(str(e), e.code, 400, e.details)

    if cached and mode == "translate":
        return jsonify({"status": "completed", "cached": True, "translation": cached})

    if not run_sync(manager.get_source(translation_id)):
        return _error(f"No source document registered for {translation_id}", "not_found", 404)

    job = create_translation_job(
        translation_id,
        mode=mode,
        target_language=target_language,
        model_override=model_override,
        ai_provider=ai_provider,
    )
    return jsonify({"job_id": job.job_id, "job": job.to_dict()}), 202


@translation_bp.post("/translations/<translation_id>")
def start_translation(translation_id: str):
    """Start (or resume) the translation of a registered document."""
    return _start_job(translation_id, "translate")


@translation_bp.post("/translations/<translation_id>/retry")
def retry_translation(translation_id: str):
    """Retry a failed or cancelled translation from its saved progress."""
    return _start_job(translation_id, "retry")


@translation_bp.post("/translations/<translation_id>/cancel")
def cancel(translation_id: str):
    if not cancel_translation(translation_id):
        return _error(f"No running translation for {translation_id}", "not_running", 404)
    return jsonify({"cancelled": True})


@translation_bp.get("/translations/<translation_id>")
def get_translation(translation_id: str):
    try:
        record = run_sync(get_manager().get_translation(translation_id))
    except TranslationNotFound as e:
        return _error(str(e), e.code, 404)
    return jsonify(record)


@translation_bp.get("/translations/<translation_id>/progress")
def get_progress(translation_id: str):
    """Realtime progress, with the latest job attached when one exists."""
    progress = run_sync(get_manager().get_realtime_progress(translation_id))
    if progress is None:
        return _error(f"No translation found for {translation_id}", "not_found", 404)
    job = get_latest_job(translation_id)
    progress["job"] = job.to_dict() if job else None
    return jsonify(progress)


@translation_bp.get("/translations/jobs/<job_id>")
def get_job_status(job_id: str):
    job = get_job(job_id)
    if not job:
        return _error("Job not found", "not_found", 404)
    return jsonify(job.to_dict())


@translation_bp.get("/translations")
def list_translations():
    return jsonify({"translations": run_sync(get_manager().get_history())})


@translation_bp.delete("/translations/<translation_id>")
def delete_translation(translation_id: str):
    run_sync(get_manager().delete_translation(translation_id))
    return jsonify({"deleted": translation_id})


@translation_bp.delete("/translations")
def clear_translations():
    run_sync(get_manager().clear_all())
    return jsonify({"cleared": True})
