"""Pytest fixtures: in-memory images and scriptable capability fakes (no network)."""

import io
import logging

import pytest
from PIL import Image

from redoimage.ai.capability_base import (
    BaseLanguageCapability,
    BaseSynthesisCapability,
    BaseVisionCapability,
)
from redoimage.ai.schema import Completion, GeneratedImage, RawTag, RawVisionAnalysis
from redoimage.core.config import (
    LanguageConfig,
    PipelineConfig,
    RenderConfig,
    Settings,
    SynthesisConfig,
    VisionConfig,
)


def make_image_bytes(width: int = 100, height: int = 100, fmt: str = "PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image of the given size and format."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeVision(BaseVisionCapability):
    """Vision capability returning a fixed analysis, or raising `error` when set."""

    name = "fake-vision"

    def __init__(self, tags=None, caption="a cat sitting indoors", confidence=0.9, error=None):
        self.tags = tags if tags is not None else [RawTag(name="cat", confidence=0.95), RawTag(name="indoor", confidence=0.8)]
        self.caption = caption
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def analyze(self, image_bytes: bytes) -> RawVisionAnalysis:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return RawVisionAnalysis(caption=self.caption, tags=self.tags, confidence=self.confidence)


class FakeLanguage(BaseLanguageCapability):
    """
    Language capability driven by a list of responses. Each item is either a string (returned as
    the completion text) or an exception (raised). The last item repeats once the list is used up.
    """

    name = "fake-language"

    def __init__(self, responses=None, tokens_used=42):
        self.responses = list(responses or ["A detailed scene."])
        self.tokens_used = tokens_used
        self.calls: list[dict] = []

    def complete(self, prompt, system_instruction, max_output_tokens, temperature, model) -> Completion:
        self.calls.append(
            {
                "prompt": prompt,
                "system_instruction": system_instruction,
                "max_output_tokens": max_output_tokens,
                "temperature": temperature,
                "model": model,
            }
        )
        item = self.responses[min(len(self.calls) - 1, len(self.responses) - 1)]
        if isinstance(item, BaseException):
            raise item
        return Completion(text=item, tokens_used=self.tokens_used, model=model)


class FakeSynthesis(BaseSynthesisCapability):
    """Synthesis capability returning a small PNG, or raising `error` when set."""

    name = "fake-synthesis"

    def __init__(self, data: bytes | None = None, error=None):
        self.data = data if data is not None else make_image_bytes(16, 16)
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str, size: str, quality: str) -> GeneratedImage:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return GeneratedImage(data=self.data, format="png")


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes(100, 100, "PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes(120, 80, "JPEG")


@pytest.fixture
def vision_config() -> VisionConfig:
    return VisionConfig()


@pytest.fixture
def language_config() -> LanguageConfig:
    return LanguageConfig()


@pytest.fixture
def synthesis_config() -> SynthesisConfig:
    return SynthesisConfig()


@pytest.fixture
def render_config() -> RenderConfig:
    return RenderConfig()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def mock_settings(tmp_path) -> Settings:
    """Settings for the mock backend with forensics written under tmp_path."""
    return Settings(backend="mock", forensics_dir=str(tmp_path / "forensics"))


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """setup_logging() replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
