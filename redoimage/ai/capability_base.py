"""Abstract bases and mock implementations for the three external capabilities."""

import io
from abc import ABC, abstractmethod

from PIL import Image

from redoimage.ai.schema import Completion, GeneratedImage, RawTag, RawVisionAnalysis


class BaseVisionCapability(ABC):
    """Image analysis: short caption, weighted tags, overall confidence."""

    name: str = "vision"

    @abstractmethod
    def analyze(self, image_bytes: bytes) -> RawVisionAnalysis:
        """Analyze raw image bytes. Raises CapabilityError on auth/rate-limit/timeout failures."""
        ...


class BaseLanguageCapability(ABC):
    """Chat-style text generation."""

    name: str = "language"

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_instruction: str,
        max_output_tokens: int,
        temperature: float,
        model: str,
    ) -> Completion:
        """Return generated text and token usage. Raises ModelUnavailableError when model is unavailable."""
        ...


class BaseSynthesisCapability(ABC):
    """Text-to-image generation."""

    name: str = "synthesis"

    @abstractmethod
    def generate(self, prompt: str, size: str, quality: str) -> GeneratedImage:
        """Generate one image for prompt at the given size ('WxH') and quality."""
        ...


class MockVisionCapability(BaseVisionCapability):
    """Placeholder vision capability for testing and development."""

    name = "mock-vision"

    def analyze(self, image_bytes: bytes) -> RawVisionAnalysis:
        return RawVisionAnalysis(
            caption="A placeholder description.",
            tags=[
                RawTag(name="mock", confidence=0.99),
                RawTag(name="test", confidence=0.9),
                RawTag(name="noise", confidence=0.2),
            ],
            confidence=0.85,
        )


class MockLanguageCapability(BaseLanguageCapability):
    """Placeholder language capability: structured meme captions or a filler description."""

    name = "mock-language"

    def complete(
        self,
        prompt: str,
        system_instruction: str,
        max_output_tokens: int,
        temperature: float,
        model: str,
    ) -> Completion:
        if "TOP:" in prompt:
            text = "TOP: When the mock runs\nBOTTOM: Exactly as planned"
        else:
            text = "A placeholder scene rendered in soft daylight with balanced composition."
        return Completion(text=text, tokens_used=len(prompt) // 4 + len(text) // 4, model=model)


class MockSynthesisCapability(BaseSynthesisCapability):
    """Placeholder synthesis capability: returns a solid grey PNG of the requested size."""

    name = "mock-synthesis"

    def generate(self, prompt: str, size: str, quality: str) -> GeneratedImage:
        width, height = parse_size(size)
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color=(128, 128, 128)).save(buffer, format="PNG")
        return GeneratedImage(data=buffer.getvalue(), format="png")


def parse_size(size: str) -> tuple[int, int]:
    """Parse 'WIDTHxHEIGHT' into a pair of positive ints."""
    try:
        w_str, h_str = size.lower().split("x", 1)
        width, height = int(w_str), int(h_str)
    except ValueError as e:
        raise ValueError(f"Invalid image size: {size!r}") from e
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {size!r}")
    return width, height
