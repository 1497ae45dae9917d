"""Pydantic data contracts for capabilities, pipeline requests and results."""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProcessingMode(str, Enum):
    """Which derivative artifact the pipeline produces. Closed set: match exhaustively."""

    REGENERATION = "regeneration"
    MEME_GENERATION = "meme_generation"


class PipelineState(str, Enum):
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    GENERATING_TEXT = "generating_text"
    GENERATING_VISUAL = "generating_visual"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    FAILED = "failed"


# --- Raw capability results -------------------------------------------------


class RawTag(BaseModel):
    """One tag as returned by the vision capability, before threshold filtering."""

    name: str
    confidence: float = 0.0


class RawVisionAnalysis(BaseModel):
    """Unfiltered vision capability output."""

    caption: str | None = None
    tags: list[RawTag] = Field(default_factory=list)
    confidence: float = 0.0


class Completion(BaseModel):
    """Language capability output."""

    text: str
    tokens_used: int = 0
    model: str | None = None


class GeneratedImage(BaseModel):
    """Image synthesis capability output."""

    data: bytes
    format: str = "png"


# --- Pipeline contracts -----------------------------------------------------


class AnalysisResult(BaseModel):
    """Normalized vision analysis: caption, relevance-ordered unique tags, confidence."""

    model_config = ConfigDict(frozen=True)

    caption: str
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    elapsed_ms: int = Field(default=0, ge=0)


class Description(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["description"] = "description"
    text: str
    tokens: int = 0
    elapsed_ms: int = 0


class MemeCaption(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["meme_caption"] = "meme_caption"
    top: str
    bottom: str
    tokens: int = 0
    elapsed_ms: int = 0


GeneratedText = Annotated[Description | MemeCaption, Field(discriminator="kind")]


class SynthesizedImage(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    kind: Literal["synthesized_image"] = "synthesized_image"
    data: bytes
    content_type: str = "image/png"
    elapsed_ms: int = 0
    tokens: int = 0


class OverlayImage(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    kind: Literal["overlay_image"] = "overlay_image"
    data: bytes
    content_type: str = "image/png"
    elapsed_ms: int = 0


VisualArtifact = Annotated[SynthesizedImage | OverlayImage, Field(discriminator="kind")]


class ProcessingMetrics(BaseModel):
    """
    Request-scoped accumulator owned by the orchestrator.

    error_info keeps the first error only; later errors are logged by the caller but never
    overwrite it.
    """

    vision_time_ms: int = 0
    text_gen_time_ms: int = 0
    visual_time_ms: int = 0
    text_tokens_used: int = 0
    tokens_used: int = 0
    error_info: str | None = None

    @property
    def total_time_ms(self) -> int:
        return self.vision_time_ms + self.text_gen_time_ms + self.visual_time_ms

    def record_error(self, message: str) -> bool:
        """Store message if no error has been recorded yet. Returns True when stored."""
        if self.error_info:
            return False
        self.error_info = message
        return True


class ProcessingRequest(BaseModel):
    """
    One incoming call. Range and format checks run in the pipeline's Validating state,
    so constructing a request never raises for bad image bytes or word counts.
    """

    model_config = ConfigDict(frozen=True)

    image_bytes: bytes = b""
    mode: ProcessingMode = ProcessingMode.REGENERATION
    target_description_words: int = 200
    content_type: str | None = None


class PipelineResult(BaseModel):
    """Terminal aggregate. Missing fields signal which steps failed."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    state: PipelineState
    mode: ProcessingMode
    analysis: AnalysisResult | None = None
    text: GeneratedText | None = None
    visual: VisualArtifact | None = None
    metrics: ProcessingMetrics = Field(default_factory=ProcessingMetrics)

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.COMPLETED
