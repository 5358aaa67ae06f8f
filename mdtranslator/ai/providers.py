"""
AI Provider API Implementations

One adapter per provider response format:
- OpenAI chat completions
- Anthropic messages
- Custom endpoints (OpenAI-compatible chat completions)

Adapters are looked up by provider type tag (see get_adapter); each one
parses exactly its own response shape, streaming (SSE) or not.
"""

import inspect
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from mdtranslator.exceptions import ProviderError, ProviderTimeoutError
from mdtranslator.logger import get_logger
from mdtranslator.translation.tokens import estimate_tokens

logger = get_logger(__name__)

TokenCallback = Callable[[int], Union[None, Awaitable[None]]]


@dataclass
class ProviderRequest:
    """Everything an adapter needs for one call."""
    api_url: str
    api_key: str
    model: str
    system_prompt: str
    user_prompt: str
    max_tokens: int = 8192
    temperature: float = 0.07
    use_stream: bool = True
    on_token_update: Optional[TokenCallback] = None


@dataclass
class ProviderResponse:
    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else 120.0
        return httpx.Timeout(
            connect=10.0,
            write=60.0,
            read=timeout_value,
            pool=10.0,
        )


def categorize_status(status_code: int) -> str:
    """Map an HTTP status to an error code used for retry decisions upstream."""
    if status_code == 429:
        return "rate_limited"
    if status_code in (401, 403):
        return "auth_failed"
    if status_code == 400:
        return "bad_request"
    if 500 <= status_code < 600:
        return "server_error"
    return "provider_error"


def handle_http_error(e: httpx.HTTPStatusError, provider: str):
    """Handle HTTP errors with detailed messages."""
    status_code = e.response.status_code
    error_text = "Unknown error"

    try:
        error_json = e.response.json()
        if isinstance(error_json, dict) and "error" in error_json:
            error_detail = error_json["error"]
            if isinstance(error_detail, dict):
                error_text = error_detail.get("message", str(error_detail))
            else:
                error_text = str(error_detail)
    except (ValueError, httpx.ResponseNotRead):
        error_text = e.response.text[:500] if e.response.is_stream_consumed else "No details"

    raise ProviderError(
        f"{provider} API error ({status_code}): {error_text}",
        code=categorize_status(status_code),
        details={"provider": provider, "status_code": status_code},
    )


async def emit_token_update(callback: Optional[TokenCallback], token_count: int) -> None:
    """Invoke a token callback that may be sync or async."""
    if callback is None:
        return
    result = callback(token_count)
    if inspect.isawaitable(result):
        await result


def iter_sse_data(line: str) -> Optional[str]:
    """Return the payload of an SSE 'data:' line, or None for anything else."""
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == "[DONE]":
        return None
    return data


class ProviderAdapter:
    """Base adapter: request building, transport and error mapping."""

    name = "provider"

    def build_headers(self, request: ProviderRequest) -> Dict[str, str]:
        raise NotImplementedError

    def build_body(self, request: ProviderRequest) -> Dict[str, Any]:
        raise NotImplementedError

    def parse_response(self, result: Dict[str, Any]) -> ProviderResponse:
        raise NotImplementedError

    def parse_stream_delta(self, event: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    async def translate(self, client: httpx.AsyncClient, request: ProviderRequest) -> ProviderResponse:
        if not request.api_url:
            raise ProviderError(f"{self.name} API URL not configured", code="ai_config_missing")

        logger.debug(f"  Calling {self.name} API (model: {request.model}, stream: {request.use_stream})...")

        try:
            if request.use_stream:
                response = await self._translate_stream(client, request)
            else:
                response = await self._translate_once(client, request)
        except httpx.HTTPStatusError as e:
            handle_http_error(e, self.name)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"{self.name} API request timeout", details={"provider": self.name}) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} API call failed: {e}", code="network_error",
                                details={"provider": self.name}) from e
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise ProviderError(f"{self.name} returned an unexpected response shape: {e}",
                                code="invalid_response", details={"provider": self.name}) from e

        logger.debug(f"  Received {len(response.content)} chars from {self.name} "
                     f"(tokens: prompt={response.prompt_tokens}, completion={response.completion_tokens})")
        return response

    async def _translate_once(self, client: httpx.AsyncClient, request: ProviderRequest) -> ProviderResponse:
        response = await client.post(request.api_url, headers=self.build_headers(request),
                                     json=self.build_body(request))
        response.raise_for_status()
        try:
            result = response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned invalid JSON: {e}", code="provider_error") from e

        parsed = self.parse_response(result)
        await emit_token_update(request.on_token_update,
                                parsed.completion_tokens or estimate_tokens(parsed.content))
        return parsed

    async def _translate_stream(self, client: httpx.AsyncClient, request: ProviderRequest) -> ProviderResponse:
        body = self.build_body(request)
        body["stream"] = True
        content = ""

        async with client.stream("POST", request.api_url, headers=self.build_headers(request),
                                 json=body) as response:
            if response.status_code >= 400:
                await response.aread()
            response.raise_for_status()

            async for line in response.aiter_lines():
                data = iter_sse_data(line)
                if data is None:
                    continue
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping unparsable stream line from {self.name}: {data[:80]}")
                    continue
                delta = self.parse_stream_delta(event)
                if delta:
                    content += delta
                    await emit_token_update(request.on_token_update, estimate_tokens(content))

        completion_tokens = estimate_tokens(content)
        await emit_token_update(request.on_token_update, completion_tokens)
        return ProviderResponse(content=content, completion_tokens=completion_tokens)


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions format."""

    name = "OpenAI"

    def build_headers(self, request: ProviderRequest) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {request.api_key}",
            "Content-Type": "application/json"
        }

    def build_body(self, request: ProviderRequest) -> Dict[str, Any]:
        return {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

    def parse_response(self, result: Dict[str, Any]) -> ProviderResponse:
        choices = result.get('choices') or []
        if not choices:
            raise ProviderError(f"No content in {self.name} response", code="provider_error")
        usage = result.get('usage') or {}
        return ProviderResponse(
            content=choices[0].get('message', {}).get('content') or '',
            prompt_tokens=usage.get('prompt_tokens', 0),
            completion_tokens=usage.get('completion_tokens', 0),
        )

    def parse_stream_delta(self, event: Dict[str, Any]) -> Optional[str]:
        choices = event.get('choices') or []
        if not choices:
            return None
        return (choices[0].get('delta') or {}).get('content')


class CustomAdapter(OpenAIAdapter):
    """User-configured endpoint speaking the OpenAI chat completions format."""

    name = "Custom provider"


class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages format."""

    name = "Anthropic"
    api_version = "2023-06-01"

    def build_headers(self, request: ProviderRequest) -> Dict[str, str]:
        return {
            "x-api-key": request.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json"
        }

    def build_body(self, request: ProviderRequest) -> Dict[str, Any]:
        return {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "system": request.system_prompt,
            "messages": [
                {"role": "user", "content": request.user_prompt},
            ],
        }

    def parse_response(self, result: Dict[str, Any]) -> ProviderResponse:
        blocks = result.get('content') or []
        text = "".join(block.get('text', '') for block in blocks if block.get('type', 'text') == 'text')
        if not blocks:
            raise ProviderError(f"No content in {self.name} response", code="provider_error")
        usage = result.get('usage') or {}
        return ProviderResponse(
            content=text,
            prompt_tokens=usage.get('input_tokens', 0),
            completion_tokens=usage.get('output_tokens', 0),
        )

    def parse_stream_delta(self, event: Dict[str, Any]) -> Optional[str]:
        if event.get('type') != 'content_block_delta':
            return None
        return (event.get('delta') or {}).get('text')


ADAPTERS = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "custom": CustomAdapter,
}


def get_adapter(provider_type: str) -> ProviderAdapter:
    """Resolve the adapter for a provider type tag."""
    adapter_class = ADAPTERS.get(provider_type)
    if adapter_class is None:
        raise ProviderError(f"Unsupported AI provider type: {provider_type}", code="ai_config_missing",
                            details={"provider_type": provider_type})
    return adapter_class()
