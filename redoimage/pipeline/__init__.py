from redoimage.pipeline.builder import build_orchestrator
from redoimage.pipeline.orchestrator import Degraded, Ok, PipelineOrchestrator
from redoimage.pipeline.validation import sniff_content_type, validate_request

__all__ = [
    "Degraded",
    "Ok",
    "PipelineOrchestrator",
    "build_orchestrator",
    "sniff_content_type",
    "validate_request",
]
