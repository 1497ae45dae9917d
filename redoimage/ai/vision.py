"""Vision analysis adapter: call-through to the vision capability plus tag normalization."""

import logging
import time

from redoimage.ai.capability_base import BaseVisionCapability
from redoimage.ai.schema import AnalysisResult, RawTag
from redoimage.core.config import VisionConfig
from redoimage.core.errors import InvalidInput, ServiceFailure

_log = logging.getLogger(__name__)

NO_CAPTION = "No description available"


def filter_tags(tags: list[RawTag], min_confidence: float) -> list[str]:
    """Keep tags at or above min_confidence; case-insensitive dedupe preserving first-seen order."""
    seen: dict[str, str] = {}
    for tag in tags:
        name = tag.name.strip()
        if not name or tag.confidence < min_confidence:
            continue
        seen.setdefault(name.casefold(), name)
    return list(seen.values())


class VisionAnalysisAdapter:
    """Normalizes vision capability output into an AnalysisResult. Does not retry."""

    def __init__(self, capability: BaseVisionCapability, config: VisionConfig) -> None:
        self._capability = capability
        self._config = config

    def analyze(self, image_bytes: bytes | None) -> AnalysisResult:
        if not image_bytes:
            raise InvalidInput("Image data cannot be empty")

        _log.info("Starting image analysis with %s. Size: %s bytes", self._capability.name, len(image_bytes))
        started = time.perf_counter()
        try:
            raw = self._capability.analyze(image_bytes)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            _log.error("Vision analysis failed after %sms", elapsed_ms, exc_info=True)
            raise ServiceFailure(f"Vision capability error: {e}", cause=e) from e
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        tags = filter_tags(raw.tags, self._config.min_tag_confidence)
        confidence = min(1.0, max(0.0, raw.confidence))
        caption = (raw.caption or "").strip() or NO_CAPTION
        _log.info(
            "Image analysis completed in %sms. Tags: %s (of %s), Confidence: %.2f",
            elapsed_ms,
            len(tags),
            len(raw.tags),
            confidence,
        )
        return AnalysisResult(caption=caption, tags=tags, confidence=confidence, elapsed_ms=elapsed_ms)
