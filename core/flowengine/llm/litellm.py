"""LiteLLM-backed chat provider.

One entry point for the four chat providers a workflow can name. Each is
mapped to its LiteLLM model prefix and given the request parameters that
provider accepts.
"""

import logging
import time
from typing import Any

import litellm

from flowengine.errors import ConfigurationError, ExternalCallError
from flowengine.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

MODEL_PREFIXES = {
    "openai": "openai",
    "anthropic": "anthropic",
    "gemini": "gemini",
    "grok": "xai",
}

# OpenAI models that reject max_tokens in favour of max_completion_tokens
COMPLETION_TOKEN_MODELS = ("gpt-4o", "gpt-5", "o1", "o3")


def build_request(
    provider: str, model: str, temperature: float, max_tokens: int
) -> dict[str, Any]:
    """Keyword arguments for litellm.acompletion, minus messages and api_key."""
    prefix = MODEL_PREFIXES.get(provider)
    if prefix is None:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}", field="provider")

    kwargs: dict[str, Any] = {"model": f"{prefix}/{model}"}
    if provider == "openai":
        kwargs["temperature"] = temperature
        if any(tag in model for tag in COMPLETION_TOKEN_MODELS):
            kwargs["max_completion_tokens"] = max_tokens
        else:
            kwargs["max_tokens"] = max_tokens
    elif provider == "grok":
        kwargs["temperature"] = temperature
        kwargs["max_completion_tokens"] = max_tokens
    elif provider == "anthropic":
        kwargs["max_tokens"] = max_tokens
    return kwargs


def _error_message(provider: str, error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    status = getattr(error, "status_code", None)
    if not message and status:
        return f"HTTP {status}"
    return f"{provider} API error: {message}"


class LiteLLMProvider(LLMProvider):
    """
    Chat completions through LiteLLM.

    Example:
        provider = LiteLLMProvider()
        response = await provider.complete("openai", "gpt-4o-mini", "Hi", api_key=key)
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    async def complete(
        self,
        provider: str,
        model: str,
        prompt: str,
        api_key: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        kwargs = build_request(provider, model, temperature, max_tokens)
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        start = time.time()
        try:
            response = await litellm.acompletion(
                messages=[{"role": "user", "content": prompt}],
                api_key=api_key,
                **kwargs,
            )
        except Exception as e:
            raise ExternalCallError(
                _error_message(provider, e), status_code=getattr(e, "status_code", None)
            ) from e

        choice = response.choices[0] if response.choices else None
        message = choice.message if choice is not None else None
        usage = getattr(response, "usage", None)
        result = LLMResponse(
            content=(message.content if message is not None else None) or "",
            model=getattr(response, "model", None) or model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=(choice.finish_reason if choice is not None else None) or "",
            refusal=getattr(message, "refusal", None),
            raw_response=response,
        )
        logger.info(
            "LLM call complete",
            extra={
                "event": "llm_call",
                "provider": provider,
                "model": result.model,
                "latency_ms": int((time.time() - start) * 1000),
            },
        )
        return result
