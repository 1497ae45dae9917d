"""AI module: data contracts, capability abstractions and adapters."""

from redoimage.ai.capability_base import (
    BaseLanguageCapability,
    BaseSynthesisCapability,
    BaseVisionCapability,
)
from redoimage.ai.image_synthesis import ImageSynthesisAdapter
from redoimage.ai.schema import AnalysisResult, PipelineResult, ProcessingMode, ProcessingRequest
from redoimage.ai.text_generation import TextGenerationAdapter
from redoimage.ai.vision import VisionAnalysisAdapter

__all__ = [
    "AnalysisResult",
    "BaseLanguageCapability",
    "BaseSynthesisCapability",
    "BaseVisionCapability",
    "ImageSynthesisAdapter",
    "PipelineResult",
    "ProcessingMode",
    "ProcessingRequest",
    "TextGenerationAdapter",
    "VisionAnalysisAdapter",
]
