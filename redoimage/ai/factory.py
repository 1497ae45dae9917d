"""Factory for capabilities. HTTP implementations are imported lazily so the mock backend needs no network stack."""

from redoimage.ai.capability_base import (
    BaseLanguageCapability,
    BaseSynthesisCapability,
    BaseVisionCapability,
)
from redoimage.core.config import LanguageConfig, SynthesisConfig, VisionConfig


def get_vision_capability(backend: str, config: VisionConfig) -> BaseVisionCapability:
    """Return a vision capability by backend name ('mock' or 'live')."""
    if backend == "mock":
        from redoimage.ai.capability_base import MockVisionCapability

        return MockVisionCapability()
    if backend == "live":
        from redoimage.ai.capability_http import AzureVisionCapability

        return AzureVisionCapability(config)
    raise ValueError(f"Unknown capability backend: {backend}")


def get_language_capability(backend: str, config: LanguageConfig) -> BaseLanguageCapability:
    """Return a language capability by backend name ('mock' or 'live')."""
    if backend == "mock":
        from redoimage.ai.capability_base import MockLanguageCapability

        return MockLanguageCapability()
    if backend == "live":
        from redoimage.ai.capability_http import OpenAIChatCapability

        return OpenAIChatCapability(config)
    raise ValueError(f"Unknown capability backend: {backend}")


def get_synthesis_capability(backend: str, config: SynthesisConfig) -> BaseSynthesisCapability:
    """Return an image synthesis capability by backend name ('mock' or 'live')."""
    if backend == "mock":
        from redoimage.ai.capability_base import MockSynthesisCapability

        return MockSynthesisCapability()
    if backend == "live":
        from redoimage.ai.capability_http import OpenAIImageCapability

        return OpenAIImageCapability(config)
    raise ValueError(f"Unknown capability backend: {backend}")
