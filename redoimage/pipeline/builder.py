"""Wire adapters, renderer and orchestrator from Settings."""

from redoimage.ai.factory import (
    get_language_capability,
    get_synthesis_capability,
    get_vision_capability,
)
from redoimage.ai.image_synthesis import ImageSynthesisAdapter
from redoimage.ai.text_generation import TextGenerationAdapter
from redoimage.ai.vision import VisionAnalysisAdapter
from redoimage.core.config import Settings
from redoimage.pipeline.orchestrator import PipelineOrchestrator
from redoimage.render.caption_overlay import CaptionOverlayRenderer


def build_orchestrator(settings: Settings, backend: str | None = None) -> PipelineOrchestrator:
    """Build an orchestrator for settings.backend (or the explicit backend override)."""
    backend = backend or settings.backend
    return PipelineOrchestrator(
        vision=VisionAnalysisAdapter(get_vision_capability(backend, settings.vision), settings.vision),
        text=TextGenerationAdapter(get_language_capability(backend, settings.language), settings.language),
        synthesis=ImageSynthesisAdapter(
            get_synthesis_capability(backend, settings.synthesis), settings.synthesis
        ),
        renderer=CaptionOverlayRenderer(settings.render),
        config=settings.pipeline,
    )
