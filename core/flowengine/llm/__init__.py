"""Chat and image provider layer."""

from flowengine.llm.image import IMAGE_PROVIDERS, ImageResult, ImageService
from flowengine.llm.litellm import LiteLLMProvider
from flowengine.llm.provider import LLMProvider, LLMResponse

__all__ = [
    "IMAGE_PROVIDERS",
    "ImageResult",
    "ImageService",
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
]
