"""Chat provider abstraction for pluggable LLM backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class LLMResponse:
    """Response from a chat completion."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    refusal: str | None = None
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract chat provider - plug in any LLM backend.

    Implementations should handle:
    - Provider-specific request parameters
    - Response normalisation into LLMResponse
    - Converting provider failures into ExternalCallError
    """

    @abstractmethod
    async def complete(
        self,
        provider: str,
        model: str,
        prompt: str,
        api_key: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """
        Send a single user message and return the completion.

        Args:
            provider: openai, anthropic, gemini or grok
            model: Provider model name
            prompt: Fully resolved user message
            api_key: Secret for the provider
            temperature: Sampling temperature (ignored where the provider doesn't take it)
            max_tokens: Completion token cap

        Returns:
            LLMResponse with content and metadata
        """
        pass
