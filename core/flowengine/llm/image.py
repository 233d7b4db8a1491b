"""
Image generation providers.

- dalle: OpenAI images API (gpt-image-* and dall-e-* models)
- grok: xAI images API, batch endpoint for more than one image
- stable-diffusion / stable-diffusion-xl / flux: Replicate predictions,
  polled until they settle
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx

from flowengine.config import get_http_timeout, get_poll_interval, get_poll_max_attempts
from flowengine.errors import ConfigurationError, ExternalCallError
from flowengine.graph.node import ImageConfig

logger = logging.getLogger(__name__)

OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"
XAI_IMAGES_URL = "https://api.x.ai/v1/images/generations"
XAI_IMAGES_BATCH_URL = "https://api.x.ai/v1/images/generations/batch"
REPLICATE_PREDICTIONS_URL = "https://api.replicate.com/v1/predictions"

DEFAULT_OPENAI_IMAGE_MODEL = "gpt-image-1.5"
DEFAULT_GROK_IMAGE_MODEL = "grok-2-image-1212"
GROK_MAX_PROMPT_LENGTH = 1024

REPLICATE_DEFAULTS = {
    "stable-diffusion": "db21e45d3f7023abc2a46ee38a23973f6dce16bb082a930b0c49861f96d1e5bf",
    "stable-diffusion-xl": "39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
    "flux": "black-forest-labs/flux-dev",
}

VERSION_ID_PATTERN = re.compile(r"^[a-f0-9]{64}$")
SETTLED_STATUSES = ("succeeded", "failed", "canceled")

IMAGE_PROVIDERS = ("dalle", "grok", *REPLICATE_DEFAULTS)


@dataclass
class ImageResult:
    """Generated image URLs (or data: URLs) plus the provider's revised prompt."""

    images: list[str]
    revised_prompt: str | None = None

    def to_output(self) -> dict[str, Any]:
        output: dict[str, Any] = {"images": list(self.images)}
        if self.revised_prompt:
            output["revised_prompt"] = self.revised_prompt
        return output


def parse_size(size: str | None) -> tuple[int, int]:
    """'1024x768' -> (1024, 768); unparseable parts default to 1024."""

    def dimension(part: str) -> int:
        try:
            return int(part) or 1024
        except ValueError:
            return 1024

    parts = (size or "1024x1024").split("x")
    width = dimension(parts[0])
    height = dimension(parts[1]) if len(parts) > 1 else 1024
    return width, height


def build_openai_request(config: ImageConfig, prompt: str) -> dict[str, Any]:
    model = config.model or DEFAULT_OPENAI_IMAGE_MODEL
    is_gpt_image = model.startswith("gpt-image")
    is_dalle3 = model == "dall-e-3"
    n = config.n or 1

    body: dict[str, Any] = {
        "model": model,
        "prompt": prompt,
        "n": min(n, 1) if is_dalle3 else min(n, 10),
        "size": config.size or "1024x1024",
    }
    quality = config.quality
    if is_gpt_image:
        # gpt-image models take low/medium/high/auto and always return base64
        if quality in ("standard", "hd"):
            body["quality"] = "high" if quality == "hd" else "medium"
        elif quality and quality != "auto":
            body["quality"] = quality
        if config.background and config.background != "auto":
            body["background"] = config.background
    else:
        body["response_format"] = "url"
        if is_dalle3:
            if quality in ("standard", "hd"):
                body["quality"] = quality
            elif quality:
                body["quality"] = "hd" if quality == "high" else "standard"
            else:
                body["quality"] = "standard"
    return body


def build_replicate_request(config: ImageConfig, prompt: str) -> dict[str, Any]:
    model_or_version = config.model or REPLICATE_DEFAULTS[config.provider]
    width, height = parse_size(config.size)
    body: dict[str, Any] = {
        "input": {
            "prompt": prompt,
            "num_outputs": min(config.n or 1, 4),
            "width": width,
            "height": height,
            "guidance_scale": config.guidance_scale or 7.5,
            "num_inference_steps": config.num_inference_steps or 50,
        }
    }
    if VERSION_ID_PATTERN.match(model_or_version):
        body["version"] = model_or_version
    else:
        body["model"] = model_or_version
    return body


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_from_body(response: httpx.Response, label: str) -> ExternalCallError:
    body = _json_or_none(response)
    message = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        elif isinstance(error, str):
            message = error
        message = message or body.get("message") or body.get("detail")
    return ExternalCallError(
        message or f"{label} error: HTTP {response.status_code}",
        status_code=response.status_code,
    )


def _grok_images(result: Any) -> list[str]:
    def pick(item: Any, *keys: str) -> Any:
        if isinstance(item, dict):
            for key in keys:
                if item.get(key):
                    return item[key]
            return None
        return item

    if isinstance(result, list):
        images = [pick(item, "url") for item in result]
    elif isinstance(result, dict) and isinstance(result.get("data"), list):
        images = [pick(item, "url", "b64_json") for item in result["data"]]
    elif isinstance(result, dict) and isinstance(result.get("images"), list):
        images = [pick(item, "url") for item in result["images"]]
    elif isinstance(result, dict) and result.get("url"):
        images = [result["url"]]
    else:
        images = []
    return [image for image in images if image]


class ImageService:
    """
    Dispatches image nodes to their provider.

    Example:
        service = ImageService()
        result = await service.generate(config, "a lighthouse at dusk", api_key=key)
        result.images  # ["https://..."]
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        poll_interval: float | None = None,
        poll_max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self.timeout = timeout if timeout is not None else get_http_timeout()
        self.poll_interval = poll_interval if poll_interval is not None else get_poll_interval()
        self.poll_max_attempts = (
            poll_max_attempts if poll_max_attempts is not None else get_poll_max_attempts()
        )
        self._sleep = sleep

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def generate(self, config: ImageConfig, prompt: str, api_key: str) -> ImageResult:
        """Generate images for an already-resolved prompt."""
        if not prompt:
            raise ConfigurationError("Image prompt is empty", field="prompt")

        provider = config.provider
        start = time.time()
        if provider == "dalle":
            result = await self._generate_openai(config, prompt, api_key)
        elif provider == "grok":
            result = await self._generate_grok(config, prompt, api_key)
        elif provider in REPLICATE_DEFAULTS:
            result = await self._generate_replicate(config, prompt, api_key)
        else:
            raise ConfigurationError(
                f"Unsupported image provider: {provider}", field="provider"
            )

        logger.info(
            f"✓ Generated {len(result.images)} image(s)",
            extra={
                "event": "image_generated",
                "provider": provider,
                "model": config.model,
                "latency_ms": int((time.time() - start) * 1000),
            },
        )
        return result

    async def _post(
        self, url: str, body: dict[str, Any], headers: dict[str, str], label: str
    ) -> Any:
        async with self._http() as client:
            try:
                response = await client.post(url, json=body, headers=headers)
            except httpx.HTTPError as e:
                raise ExternalCallError(f"{label} request failed: {e}") from e
        if not response.is_success:
            raise _error_from_body(response, label)
        result = _json_or_none(response)
        if result is None:
            raise ExternalCallError(f"{label} returned a response that is not JSON")
        return result

    async def _generate_openai(
        self, config: ImageConfig, prompt: str, api_key: str
    ) -> ImageResult:
        body = build_openai_request(config, prompt)
        result = await self._post(
            OPENAI_IMAGES_URL,
            body,
            {"Authorization": f"Bearer {api_key}"},
            "OpenAI image generation",
        )

        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, list) or not data:
            raise ExternalCallError("Image generation response contained no data")

        images = []
        for item in data:
            if not isinstance(item, dict):
                continue
            if item.get("b64_json"):
                images.append(f"data:image/png;base64,{item['b64_json']}")
            elif item.get("url"):
                images.append(item["url"])
        if not images:
            raise ExternalCallError("No image data found in the generation response")

        first = data[0] if isinstance(data[0], dict) else {}
        return ImageResult(images=images, revised_prompt=first.get("revised_prompt"))

    async def _generate_grok(self, config: ImageConfig, prompt: str, api_key: str) -> ImageResult:
        if len(prompt) > GROK_MAX_PROMPT_LENGTH:
            raise ConfigurationError(
                f"Prompt is too long for grok image generation: {len(prompt)} characters "
                f"(max {GROK_MAX_PROMPT_LENGTH})",
                field="prompt",
            )

        n = min(config.n or 1, 10)
        body = {
            "model": config.model or DEFAULT_GROK_IMAGE_MODEL,
            "prompt": prompt,
            "n": n,
            "response_format": "url",
        }
        url = XAI_IMAGES_BATCH_URL if n > 1 else XAI_IMAGES_URL
        result = await self._post(
            url, body, {"Authorization": f"Bearer {api_key}"}, "Grok image generation"
        )

        images = _grok_images(result)
        if not images:
            raise ExternalCallError("Grok returned no images")
        return ImageResult(images=images)

    async def _generate_replicate(
        self, config: ImageConfig, prompt: str, api_key: str
    ) -> ImageResult:
        headers = {"Authorization": f"Token {api_key}"}
        body = build_replicate_request(config, prompt)
        prediction = await self._post(REPLICATE_PREDICTIONS_URL, body, headers, "Replicate")

        prediction_id = prediction.get("id") if isinstance(prediction, dict) else None
        if not prediction_id:
            raise ExternalCallError("Replicate did not return a prediction id")

        result = prediction
        attempts = 0
        async with self._http() as client:
            while (
                result.get("status") not in SETTLED_STATUSES
                and attempts < self.poll_max_attempts
            ):
                await self._sleep(self.poll_interval)
                try:
                    response = await client.get(
                        f"{REPLICATE_PREDICTIONS_URL}/{prediction_id}", headers=headers
                    )
                except httpx.HTTPError as e:
                    raise ExternalCallError(f"Replicate status check failed: {e}") from e
                if not response.is_success:
                    raise ExternalCallError(
                        f"Replicate status check failed: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                result = _json_or_none(response) or {}
                attempts += 1
                logger.debug(
                    f"Replicate prediction {prediction_id}: {result.get('status')} "
                    f"(attempt {attempts})"
                )

        status = result.get("status")
        if status == "failed":
            raise ExternalCallError(
                f"Image generation failed: {result.get('error') or 'unknown error'}"
            )
        if status == "canceled":
            raise ExternalCallError("Image generation was canceled")
        if status != "succeeded":
            raise ExternalCallError(f"Image generation timed out (status: {status})")

        output = result.get("output")
        if isinstance(output, list):
            images = [url for url in output if isinstance(url, str) and url]
        elif isinstance(output, str) and output:
            images = [output]
        else:
            images = []
        if not images:
            raise ExternalCallError("Replicate returned no images")
        return ImageResult(images=images)
