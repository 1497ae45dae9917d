"""Image synthesis adapter: prompt in, fixed-size PNG out."""

import logging
import time

from redoimage.ai.capability_base import BaseSynthesisCapability
from redoimage.ai.schema import SynthesizedImage
from redoimage.core.config import SynthesisConfig
from redoimage.core.errors import InvalidArgument, ServiceUnavailable

_log = logging.getLogger(__name__)

USER_SAFE_MESSAGE = "The image generation service is temporarily unavailable. Please try again later."
CONTENT_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "jpg": "image/jpeg", "webp": "image/webp"}


def truncate_prompt(prompt: str, max_chars: int) -> str:
    """Cut prompt to max_chars, backing off to the last word boundary when one exists."""
    if len(prompt) <= max_chars:
        return prompt
    cut = prompt[:max_chars]
    space = cut.rfind(" ")
    return cut[:space] if space > 0 else cut


class ImageSynthesisAdapter:
    """Wraps the synthesis capability. Size, quality and format are deployment constants."""

    def __init__(self, capability: BaseSynthesisCapability, config: SynthesisConfig) -> None:
        self._capability = capability
        self._config = config

    def synthesize(self, prompt: str | None) -> SynthesizedImage:
        if prompt is None or not prompt.strip():
            raise InvalidArgument("Prompt cannot be empty or whitespace")

        prompt = truncate_prompt(prompt.strip(), self._config.max_prompt_chars)
        _log.info("Generating %s image with %s", self._config.size, self._capability.name)
        started = time.perf_counter()
        try:
            generated = self._capability.generate(prompt, self._config.size, self._config.quality)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            _log.error("Image generation failed after %sms", elapsed_ms, exc_info=True)
            raise ServiceUnavailable(USER_SAFE_MESSAGE, cause=e) from e
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if not generated.data:
            _log.error("Image generation returned no data after %sms", elapsed_ms)
            raise ServiceUnavailable(USER_SAFE_MESSAGE)

        # Rough estimate; image endpoints do not report token usage.
        tokens = len(prompt) // 4
        content_type = CONTENT_TYPES.get(generated.format.lower(), "image/png")
        _log.info(
            "Image generated in %sms. Size: %s bytes, estimated tokens: %s",
            elapsed_ms,
            len(generated.data),
            tokens,
        )
        return SynthesizedImage(data=generated.data, content_type=content_type, elapsed_ms=elapsed_ms, tokens=tokens)
