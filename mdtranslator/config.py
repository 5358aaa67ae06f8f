import copy
import json
from typing import Dict, Any

from mdtranslator.core import database as db
from mdtranslator.core.schema import initialize_database
from mdtranslator.logger import get_logger, refresh_log_mode

logger = get_logger(__name__)

# Translation configuration constants
DEFAULT_TARGET_LANGUAGE = "zh-CN"
DEFAULT_MAX_CONTEXT_TOKENS = 2048  # Provider context window used for batch planning
DEFAULT_SAFE_TOKEN_MARGIN = 0  # Reserved for instructions and response

# Provider configuration constants
BUILTIN_PROVIDERS = ["openai", "anthropic", "custom"]

BUILTIN_PROVIDER_DISPLAY_NAMES = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "custom": "Custom (OpenAI-compatible)"
}

PROVIDER_DEFAULTS = {
    "timeout": 120
}

PLACEHOLDER_API_KEY = "YOUR_API_KEY_HERE"

# Custom provider names double as config section keys
PROVIDER_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"

# Default prompts
DEFAULT_PROMPTS = {
    "system_prompt": {
        "version": "1.0",
        "description": "System prompt for Markdown batch translation",
        "prompt": """You are a professional technical document translator. Translate the given Markdown content into {target_language_name}.

Critical Requirements:
1. **Faithfulness**: Preserve the exact original meaning and intent without any additions, deletions, or interpretations
2. **Naturalness**: Use expressions and phrasing that are natural and idiomatic in {target_language_name}, while maintaining the original technical accuracy
3. **Markdown Integrity**: Preserve ALL Markdown formatting exactly as is (headings, lists, code blocks, links, tables, etc.)
4. **Markers**: Copy every paragraph marker such as <!-- MDT_PARA_0 --> unchanged, exactly once, right after the paragraph it follows
5. **Code Preservation**: NEVER translate text within code blocks or code fences
6. **Conciseness**: Return ONLY the translated content, with no explanations, notes, or commentary"""
    },
    "user_prompt": {
        "version": "1.0",
        "description": "User prompt wrapping one batch of paragraphs",
        "prompt": """Translate the following Markdown content into {target_language_name}.

```markdown
{content}
```

Requirements:
1. Maintain ALL Markdown formatting precisely (headings, lists, code blocks, links, tables, etc.)
2. Keep every <!-- MDT_PARA_n --> marker exactly as written and in the same position
3. Keep technical terminology and API names intact unless they have well-established {target_language_name} equivalents
4. Return ONLY the translated Markdown content, with no additional explanations"""
    }
}

# Default configuration templates
DEFAULT_CONFIG = {
    "ai_provider": "openai",
    "openai": {
        "api_key": PLACEHOLDER_API_KEY,
        "models": ["gpt-4o-mini", "gpt-4o"],  # First is default
        "timeout": 120,
        "api_url": "https://api.openai.com/v1/chat/completions"
    },
    "anthropic": {
        "api_key": PLACEHOLDER_API_KEY,
        "models": ["claude-3-5-haiku-latest"],
        "timeout": 120,
        "api_url": "https://api.anthropic.com/v1/messages"
    },
    "custom": {
        "api_key": PLACEHOLDER_API_KEY,
        "models": [],
        "timeout": 120,
        "api_url": ""
    },
    "translation": {
        "target_language": DEFAULT_TARGET_LANGUAGE,
        "max_context_tokens": DEFAULT_MAX_CONTEXT_TOKENS,
        "safe_token_margin": DEFAULT_SAFE_TOKEN_MARGIN,
        "max_tokens": 8192,
        "temperature": 0.07,
        "request_timeout": 300,  # Seconds per batch call
        "use_stream": True
    },
    "rate_limit": {
        "max_requests": 60,
        "window_ms": 60000
    },
    "progress": {
        "persist_interval_ms": 3000,
        "min_sample_interval_ms": 100,
        "speed_smoothing": 0.7
    },
    "storage": {
        "max_retries": 3
    },
    "log_mode": "off"
}


def initialize_app():
    """
    Initialize the application.
    This function is called on first run or when performing a factory reset.
    It creates the database and default configuration in database.
    """
    logger.info("Initializing application...")

    initialize_database()
    logger.info("Database initialized")

    try:
        existing_config = db.get_app_config('config')
        if not existing_config:
            logger.info("No config in database, initializing default config")
            save_config(DEFAULT_CONFIG)
        else:
            logger.debug("Config already exists in database")
            refresh_log_mode(json.loads(existing_config).get('log_mode', 'off'))
    except Exception as e:
        logger.error(f"Failed to check/initialize config in database: {e}")
        logger.warning("Application will use in-memory default configuration")

    logger.info("Application initialization complete")


def merge_with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing sections and keys from DEFAULT_CONFIG (one level deep)."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in config.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_config() -> Dict[str, Any]:
    """Load the configuration from database."""
    try:
        config_json = db.get_app_config('config')
        if config_json:
            config = merge_with_defaults(json.loads(config_json))
            logger.debug("Configuration loaded from database")
            return config
        logger.info("No config in database, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)
    except Exception as e:
        logger.error(f"Failed to load config from database: {e}")
        logger.warning("Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any]):
    """Save the configuration to database."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        db.set_app_config('config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise
    refresh_log_mode(config.get('log_mode', 'off'))


def get_prompt(prompt_name: str = "user_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    return DEFAULT_PROMPTS.get(prompt_name, DEFAULT_PROMPTS["user_prompt"])


def factory_reset():
    """
    Perform a factory reset.
    WARNING: This will delete all data and reset to defaults.
    """
    logger.warning("Performing factory reset...")

    if db.DB_FILE.exists():
        db.DB_FILE.unlink()
        logger.info("Database deleted")

    initialize_app()
    logger.info("Factory reset complete")
