"""Settings management API routes."""

from __future__ import annotations

import re
from typing import Any, Dict

from flask import Blueprint, jsonify, request

import mdtranslator.config as config
from mdtranslator.config import (
    BUILTIN_PROVIDERS,
    BUILTIN_PROVIDER_DISPLAY_NAMES,
    PROVIDER_DEFAULTS,
    PROVIDER_NAME_PATTERN,
)
from mdtranslator import language_codes as lc
from mdtranslator.logger import get_logger, LOG_FILE
from mdtranslator.web import tasks

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)

LOG_MODES = ("off", "info", "debug")
TOP_LEVEL_KEYS = ("ai_provider", "log_mode", "translation", "rate_limit", "progress", "storage")

# Section -> keys that must be positive numbers
POSITIVE_NUMBER_FIELDS = {
    "translation": ("max_context_tokens", "max_tokens", "request_timeout"),
    "rate_limit": ("max_requests", "window_ms"),
    "progress": ("persist_interval_ms",),
    "storage": ("max_retries",),
}


@settings_bp.get("/")
def get_settings():
    """Return current system configuration with default values merged."""
    current_config = config.load_config()
    default_config = config.DEFAULT_CONFIG

    for provider in BUILTIN_PROVIDERS:
        provider_config = current_config.setdefault(provider, dict(default_config.get(provider, {})))
        default_provider = default_config.get(provider, {})
        if not provider_config.get("api_url"):
            provider_config["api_url"] = default_provider.get("api_url", "")
        if not provider_config.get("models"):
            provider_config["models"] = list(default_provider.get("models", []))

    logger.debug("Settings retrieved with defaults merged")
    return jsonify({
        "config": current_config,
        "meta": {
            "builtin_providers": [
                {"id": p, "name": BUILTIN_PROVIDER_DISPLAY_NAMES[p]}
                for p in BUILTIN_PROVIDERS
            ],
            "provider_defaults": PROVIDER_DEFAULTS,
            "provider_name_pattern": PROVIDER_NAME_PATTERN,
            "log_modes": list(LOG_MODES),
        }
    })


@settings_bp.put("/")
def update_settings():
    """Update system configuration."""
    data = request.get_json(silent=True)
    if not data or "config" not in data:
        return jsonify({"error": "Missing 'config' in request body", "code": "invalid_request"}), 400

    new_config = data["config"]
    validation_error = validate_config(new_config)
    if validation_error:
        return jsonify({"error": validation_error, "code": "invalid_config"}), 400

    translation = new_config.get("translation")
    if isinstance(translation, dict) and "target_language" in translation:
        translation["target_language"] = lc.normalize_language_code(translation["target_language"])

    # Merge with existing config to preserve any fields not in the request
    current_config = config.load_config()
    for key, value in new_config.items():
        if key in TOP_LEVEL_KEYS and not isinstance(value, dict):
            current_config[key] = value
        elif isinstance(value, dict) and isinstance(current_config.get(key), dict):
            current_config[key].update(value)
        else:
            current_config[key] = value

    config.save_config(current_config)
    tasks.apply_settings(current_config)
    logger.info("Settings updated successfully")

    return jsonify({"message": "Settings updated successfully", "config": current_config})


@settings_bp.post("/factory-reset")
def factory_reset():
    """Delete all data and restore the default configuration."""
    tasks.reset()
    config.factory_reset()
    return jsonify({"message": "Factory reset complete"})


@settings_bp.delete("/logs")
def clear_logs():
    """Delete all log files to free up disk space."""
    log_dir = LOG_FILE.parent
    deleted_count = 0
    if log_dir.exists():
        for log_path in log_dir.glob("*.log"):
            log_path.unlink()
            deleted_count += 1

    if deleted_count > 0:
        logger.info("Deleted %s log file(s)", deleted_count)
        return jsonify({"message": f"Successfully deleted {deleted_count} log file(s)"})
    return jsonify({"message": "No log files found to delete"})


def validate_config(config_dict: Dict[str, Any]) -> str | None:
    """Validate configuration structure and return error message if invalid."""
    if not isinstance(config_dict, dict):
        return "Configuration must be an object"

    provider = config_dict.get("ai_provider")
    if provider is not None:
        if not isinstance(provider, str) or not re.match(PROVIDER_NAME_PATTERN, provider):
            return f"Invalid AI provider name: {provider}. Only letters, numbers, hyphens, and underscores allowed."

    log_mode = config_dict.get("log_mode")
    if log_mode is not None and log_mode not in LOG_MODES:
        return f"Invalid log_mode: {log_mode}. Use one of {', '.join(LOG_MODES)}"

    for section, fields in POSITIVE_NUMBER_FIELDS.items():
        section_config = config_dict.get(section)
        if section_config is None:
            continue
        if not isinstance(section_config, dict):
            return f"{section} config must be an object"
        for field in fields:
            if field in section_config:
                value = section_config[field]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                    return f"{section}.{field} must be a positive number"

    translation = config_dict.get("translation") or {}
    if "target_language" in translation:
        if not lc.is_valid_language_code(translation["target_language"]):
            return f"Invalid target language: {translation['target_language']}"
    if "safe_token_margin" in translation:
        margin = translation["safe_token_margin"]
        if isinstance(margin, bool) or not isinstance(margin, int) or margin < 0:
            return "translation.safe_token_margin must be a non-negative integer"

    for key, value in config_dict.items():
        if key in TOP_LEVEL_KEYS or not isinstance(value, dict):
            continue
        if key not in BUILTIN_PROVIDERS and not re.match(PROVIDER_NAME_PATTERN, key):
            return f"Invalid custom provider name: {key}. Only letters, numbers, hyphens, and underscores allowed."
        if "models" in value and not isinstance(value["models"], list):
            return f"{key} models must be an array"
        if "api_url" in value and value["api_url"] and not isinstance(value["api_url"], str):
            return f"{key} api_url must be a string"
        if "timeout" in value:
            timeout = value["timeout"]
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                return f"{key} timeout must be a positive number"

    return None
