"""
AI Translation Service Module

This module provides the translation capability used by the orchestrator:
- AIService class that prompts the configured provider with one batch
- TranslateOptions / TranslationResult passed across that boundary
- Configuration validation

For provider-specific API implementations, see ai/providers.py
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from mdtranslator.config import load_config, get_prompt, BUILTIN_PROVIDERS, PLACEHOLDER_API_KEY
from mdtranslator.exceptions import ProviderError, ProviderTimeoutError
from mdtranslator.logger import get_logger
from mdtranslator import language_codes as lc
from mdtranslator.ai.providers import (
    ProviderRequest,
    TokenCallback,
    get_adapter,
    get_httpx_timeout,
)

logger = get_logger(__name__)


@dataclass
class TranslateOptions:
    """Per-call options of the translation capability."""
    target_language: str
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    on_token_update: Optional[TokenCallback] = None
    timeout: Optional[float] = None  # Deadline in seconds for the whole call


@dataclass
class TranslationResult:
    content: str
    token_count: int
    model: str
    duration: float


def _provider_display(provider: str) -> str:
    if provider in BUILTIN_PROVIDERS:
        return provider.capitalize()
    return provider.replace('-', ' ').title()


def validate_ai_config(config: Optional[Dict[str, Any]] = None, provider_override: Optional[str] = None) -> None:
    """
    Validate that AI provider configuration is properly set up.

    Args:
        config: Configuration to check (loaded from the database when omitted)
        provider_override: Optional provider to validate instead of the default.

    Raises:
        ProviderError: If configuration is invalid or missing, with code and details.
    """
    config = config if config is not None else load_config()
    provider = provider_override if provider_override else config.get('ai_provider', 'openai')

    provider_config = config.get(provider)
    if not provider_config or not isinstance(provider_config, dict):
        raise ProviderError(
            f"AI provider '{provider}' configuration not found",
            code="ai_config_missing",
            details={"provider": provider}
        )

    api_key = provider_config.get('api_key', '')
    if not api_key or api_key == PLACEHOLDER_API_KEY:
        raise ProviderError(
            f"{_provider_display(provider)} API key not configured. Please set it in Settings.",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "api_key"}
        )

    models = provider_config.get('models', [])
    valid_models = [m for m in models if m and isinstance(m, str)] if isinstance(models, list) else []
    if not valid_models and not provider_config.get('model'):
        raise ProviderError(
            f"{_provider_display(provider)} model not configured",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "models"}
        )

    if not provider_config.get('api_url'):
        raise ProviderError(
            f"{_provider_display(provider)} API URL not configured",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "api_url"}
        )


class AIService:
    """AI service for translation."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        model_override: Optional[str] = None,
        provider_override: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config if config is not None else load_config()
        # Use provider_override if specified, otherwise use config default
        self.provider = provider_override if provider_override else self.config.get('ai_provider', 'openai')
        self.model_override = model_override
        self.translation_config = self.config.get('translation', {})
        self._transport = transport
        # Token usage tracking
        self._last_token_usage = {'prompt_tokens': 0, 'completion_tokens': 0}
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        logger.info(f"Initialized AI service with provider: {self.provider}")

    @property
    def provider_config(self) -> Dict[str, Any]:
        return self.config.get(self.provider, {})

    @property
    def provider_type(self) -> str:
        """Type tag selecting the response adapter; non built-in providers are OpenAI-compatible."""
        if self.provider in BUILTIN_PROVIDERS:
            return self.provider
        return self.provider_config.get('type', 'custom')

    def _get_model(self, provider_config: Dict[str, Any], requested: Optional[str] = None) -> str:
        """
        Get the model to use for translation.

        Priority:
        1. model requested for this call
        2. model_override (if set)
        3. First model from 'models' array
        4. 'model' field (legacy)
        """
        if requested:
            return requested
        if self.model_override:
            return self.model_override

        models = provider_config.get('models', [])
        if models and isinstance(models, list) and models[0]:
            return models[0]

        return provider_config.get('model', '')

    def get_last_token_usage(self) -> Dict[str, int]:
        """Get token usage from the last API call."""
        return self._last_token_usage.copy()

    def get_total_token_usage(self) -> Dict[str, int]:
        """Get accumulated token usage."""
        return {
            'prompt_tokens': self.total_prompt_tokens,
            'completion_tokens': self.total_completion_tokens,
        }

    def build_prompts(self, text: str, target_language: str) -> Dict[str, str]:
        """Render the system and user prompt templates for one batch."""
        target_language_name = lc.get_language_name(target_language) or target_language
        system_prompt = get_prompt('system_prompt')['prompt'].format(
            target_language_name=target_language_name,
        )
        user_prompt = get_prompt('user_prompt')['prompt'].format(
            target_language_name=target_language_name,
            content=text,
        )
        return {"system": system_prompt, "user": user_prompt}

    async def translate(self, text: str, options: TranslateOptions) -> TranslationResult:
        """
        Translate one batch of Markdown text.

        Args:
            text: Batch payload (paragraphs with their markers)
            options: Target language, model, sampling and deadline settings

        Returns:
            TranslationResult with the raw model output

        Raises:
            ProviderError: Network, HTTP or model failure
            ProviderTimeoutError: The call did not finish within options.timeout
        """
        provider_config = self.provider_config
        adapter = get_adapter(self.provider_type)
        prompts = self.build_prompts(text, options.target_language)
        model = self._get_model(provider_config, options.model)

        request = ProviderRequest(
            api_url=provider_config.get('api_url', ''),
            api_key=provider_config.get('api_key', ''),
            model=model,
            system_prompt=prompts["system"],
            user_prompt=prompts["user"],
            max_tokens=options.max_tokens or self.translation_config.get('max_tokens', 8192),
            temperature=(options.temperature if options.temperature is not None
                         else self.translation_config.get('temperature', 0.07)),
            use_stream=self.translation_config.get('use_stream', True),
            on_token_update=options.on_token_update,
        )
        deadline = options.timeout if options.timeout is not None else self.translation_config.get('request_timeout')

        logger.debug(f"  Input to AI (batch):\n{text}")
        start = time.monotonic()
        async with httpx.AsyncClient(timeout=get_httpx_timeout(provider_config.get('timeout', 120)),
                                     transport=self._transport) as client:
            try:
                response = await asyncio.wait_for(adapter.translate(client, request), timeout=deadline)
            except asyncio.TimeoutError as e:
                raise ProviderTimeoutError(
                    f"Translation call exceeded its {deadline}s deadline",
                    details={"provider": self.provider, "timeout": deadline},
                ) from e
        duration = time.monotonic() - start
        logger.debug(f"  Output from AI (response):\n{response.content}")

        self._last_token_usage = {
            'prompt_tokens': response.prompt_tokens,
            'completion_tokens': response.completion_tokens,
        }
        self.total_prompt_tokens += response.prompt_tokens
        self.total_completion_tokens += response.completion_tokens

        return TranslationResult(
            content=response.content,
            token_count=response.completion_tokens,
            model=model,
            duration=duration,
        )
