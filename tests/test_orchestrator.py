"""End-to-end pipeline scenarios against fake capabilities: success, degradation, failure, cancellation."""

import io
import threading
from unittest.mock import MagicMock

import pytest
from PIL import Image

from redoimage.ai.capability_base import BaseLanguageCapability
from redoimage.ai.image_synthesis import USER_SAFE_MESSAGE, ImageSynthesisAdapter
from redoimage.ai.schema import (
    Description,
    MemeCaption,
    OverlayImage,
    PipelineState,
    ProcessingMetrics,
    ProcessingMode,
    ProcessingRequest,
    SynthesizedImage,
)
from redoimage.ai.text_generation import FALLBACK_BOTTOM, FALLBACK_TOP, TextGenerationAdapter
from redoimage.ai.vision import VisionAnalysisAdapter
from redoimage.core.config import Settings
from redoimage.core.errors import CapabilityError, InvalidInput, PipelineCancelled
from redoimage.pipeline.builder import build_orchestrator
from redoimage.pipeline.orchestrator import PipelineOrchestrator, fallback_description
from redoimage.render.caption_overlay import CaptionOverlayRenderer
from tests.conftest import FakeLanguage, FakeSynthesis, FakeVision

pytestmark = [pytest.mark.slow]


@pytest.fixture
def build(vision_config, language_config, synthesis_config, render_config, pipeline_config):
    """Return a builder that wires an orchestrator around the given fake capabilities."""

    def _build(vision=None, language=None, synthesis=None) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            vision=VisionAnalysisAdapter(vision or FakeVision(), vision_config),
            text=TextGenerationAdapter(language or FakeLanguage(), language_config),
            synthesis=ImageSynthesisAdapter(synthesis or FakeSynthesis(), synthesis_config),
            renderer=CaptionOverlayRenderer(render_config),
            config=pipeline_config,
            cancel_poll_seconds=0.01,
        )

    return _build


class BlockingLanguage(BaseLanguageCapability):
    """Raises the cancel signal itself, then blocks until released."""

    name = "blocking-language"

    def __init__(self, cancel: threading.Event) -> None:
        self.cancel = cancel
        self.release = threading.Event()

    def complete(self, prompt, system_instruction, max_output_tokens, temperature, model):
        self.cancel.set()
        self.release.wait(5)
        raise AssertionError("result should have been discarded")


def test_regeneration_success(build, png_bytes):
    language = FakeLanguage(["A tabby cat on a sofa."], tokens_used=77)
    synthesis = FakeSynthesis()
    result = build(language=language, synthesis=synthesis).run(
        ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.REGENERATION, target_description_words=200)
    )
    assert result.state == PipelineState.COMPLETED
    assert result.succeeded
    assert result.analysis.tags == ["cat", "indoor"]
    assert isinstance(result.text, Description)
    assert result.text.text == "A tabby cat on a sofa."
    assert isinstance(result.visual, SynthesizedImage)
    assert synthesis.prompts == ["A tabby cat on a sofa."]
    assert result.metrics.error_info is None
    assert result.metrics.text_tokens_used == 77
    assert result.metrics.tokens_used == len("A tabby cat on a sofa.") // 4
    assert result.metrics.total_time_ms == (
        result.metrics.vision_time_ms + result.metrics.text_gen_time_ms + result.metrics.visual_time_ms
    )


def test_regeneration_text_failure_degrades_to_tag_list(build, png_bytes):
    """Language failure: description falls back to the tag list and synthesis still runs on it."""
    synthesis = FakeSynthesis()
    orchestrator = build(language=FakeLanguage([CapabilityError("boom")]), synthesis=synthesis)
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes, target_description_words=300))

    assert result.state == PipelineState.COMPLETED
    assert result.text == Description(text="Image contains: cat, indoor")
    assert synthesis.prompts == ["Image contains: cat, indoor"]
    assert isinstance(result.visual, SynthesizedImage)
    assert result.metrics.error_info.startswith("Description generation failed")
    assert "boom" in result.metrics.error_info
    assert result.metrics.text_gen_time_ms == 0
    assert result.metrics.text_tokens_used == 0


def test_meme_end_to_end_overlays_source_image(build, png_bytes):
    synthesis = FakeSynthesis()
    orchestrator = build(language=FakeLanguage(["TOP: WHEN YOU FETCH\nBOTTOM: THE WRONG BALL"]), synthesis=synthesis)
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.MEME_GENERATION))

    assert result.state == PipelineState.COMPLETED
    assert result.text == MemeCaption(top="WHEN YOU FETCH", bottom="THE WRONG BALL", tokens=42, elapsed_ms=result.text.elapsed_ms)
    assert isinstance(result.visual, OverlayImage)
    assert result.visual.content_type == "image/png"
    assert Image.open(io.BytesIO(result.visual.data)).size == (100, 100)
    assert synthesis.prompts == []
    assert result.metrics.tokens_used == 0
    assert result.metrics.error_info is None


def test_meme_text_failure_uses_fallback_caption(build, png_bytes):
    orchestrator = build(language=FakeLanguage([CapabilityError("down")]))
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.MEME_GENERATION))
    assert result.state == PipelineState.COMPLETED
    assert (result.text.top, result.text.bottom) == (FALLBACK_TOP, FALLBACK_BOTTOM)
    assert isinstance(result.visual, OverlayImage)
    assert result.metrics.error_info.startswith("Meme caption generation failed")


@pytest.mark.parametrize("reply", ["lol", "TOP: When the cat sees\nBOTTOM:"])
def test_unparseable_meme_reply_falls_back_and_records_error(build, png_bytes, reply):
    orchestrator = build(language=FakeLanguage([reply]))
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.MEME_GENERATION))
    assert result.state == PipelineState.COMPLETED
    assert (result.text.top, result.text.bottom) == (FALLBACK_TOP, FALLBACK_BOTTOM)
    assert isinstance(result.visual, OverlayImage)
    assert result.metrics.error_info.startswith("Meme caption generation failed: Could not parse meme caption")


@pytest.mark.parametrize(
    "text, expected_visual, expected_prompts",
    [
        (Description(text="A red kite over a beach."), SynthesizedImage, ["A red kite over a beach."]),
        (MemeCaption(top="WHEN THE KITE", bottom="FLIES AWAY"), OverlayImage, []),
    ],
)
def test_visual_step_dispatches_on_text_variant(build, png_bytes, text, expected_visual, expected_prompts):
    synthesis = FakeSynthesis()
    orchestrator = build(synthesis=synthesis)
    metrics = ProcessingMetrics()
    request = ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.MEME_GENERATION)
    outcome = orchestrator._generate_visual("run-visual", request, text, metrics, None)
    assert isinstance(outcome.value, expected_visual)
    assert synthesis.prompts == expected_prompts
    assert metrics.error_info is None


def test_regeneration_jpeg_synthesis_failure_keeps_description(build, jpeg_bytes):
    orchestrator = build(synthesis=FakeSynthesis(error=CapabilityError("content policy")))
    result = orchestrator.run(
        ProcessingRequest(image_bytes=jpeg_bytes, target_description_words=250, content_type="image/jpeg")
    )
    assert result.state == PipelineState.COMPLETED
    assert result.visual is None
    assert isinstance(result.text, Description)
    assert result.metrics.error_info == f"Image generation failed: {USER_SAFE_MESSAGE}"
    assert result.metrics.visual_time_ms == 0


def test_empty_image_rejected_before_any_adapter_call(pipeline_config):
    vision, text, synthesis, renderer = MagicMock(), MagicMock(), MagicMock(), MagicMock()
    orchestrator = PipelineOrchestrator(vision, text, synthesis, renderer, pipeline_config)
    with pytest.raises(InvalidInput):
        orchestrator.run(ProcessingRequest(image_bytes=b""))
    for adapter in (vision, text, synthesis, renderer):
        assert adapter.method_calls == []


def test_word_count_out_of_range_rejected(build, png_bytes):
    vision = FakeVision()
    with pytest.raises(InvalidInput):
        build(vision=vision).run(ProcessingRequest(image_bytes=png_bytes, target_description_words=1000))
    assert vision.calls == 0


def test_vision_failure_fails_run_with_metrics_only(build, png_bytes):
    language = FakeLanguage()
    synthesis = FakeSynthesis()
    orchestrator = build(vision=FakeVision(error=CapabilityError("403 forbidden")), language=language, synthesis=synthesis)
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes))

    assert result.state == PipelineState.FAILED
    assert not result.succeeded
    assert result.analysis is None
    assert result.text is None
    assert result.visual is None
    assert result.metrics.error_info == "Vision analysis failed: Vision capability error: 403 forbidden"
    assert language.calls == []
    assert synthesis.prompts == []


def test_first_failure_wins(build, png_bytes):
    orchestrator = build(
        language=FakeLanguage([CapabilityError("text down")]),
        synthesis=FakeSynthesis(error=CapabilityError("image down")),
    )
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes))
    assert result.state == PipelineState.COMPLETED
    assert result.text.text == fallback_description(["cat", "indoor"])
    assert result.visual is None
    assert result.metrics.error_info.startswith("Description generation failed")
    assert "image down" not in result.metrics.error_info


def test_cancel_before_run_aborts(build, png_bytes):
    vision = FakeVision()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(PipelineCancelled):
        build(vision=vision).run(ProcessingRequest(image_bytes=png_bytes), cancel=cancel)
    assert vision.calls == 0


def test_cancel_during_text_step_degrades_remaining_steps(build, png_bytes):
    cancel = threading.Event()
    language = BlockingLanguage(cancel)
    synthesis = FakeSynthesis()
    try:
        result = build(language=language, synthesis=synthesis).run(
            ProcessingRequest(image_bytes=png_bytes), cancel=cancel
        )
    finally:
        language.release.set()

    assert result.state == PipelineState.COMPLETED
    assert result.analysis is not None
    assert result.text.text == "Image contains: cat, indoor"
    assert result.visual is None
    assert synthesis.prompts == []
    assert result.metrics.error_info.startswith("Description generation failed: Cancelled")


def test_orchestrator_is_reusable_across_threads(build, png_bytes):
    orchestrator = build()
    results = []

    def _run():
        results.append(orchestrator.run(ProcessingRequest(image_bytes=png_bytes)))

    threads = [threading.Thread(target=_run) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    assert len(results) == 4
    assert all(r.state == PipelineState.COMPLETED for r in results)


def test_build_orchestrator_mock_backend_runs(tmp_path, png_bytes):
    orchestrator = build_orchestrator(Settings(backend="mock", forensics_dir=str(tmp_path)))
    result = orchestrator.run(ProcessingRequest(image_bytes=png_bytes, mode=ProcessingMode.MEME_GENERATION))
    assert result.state == PipelineState.COMPLETED
    assert result.analysis.tags == ["mock", "test"]
    assert (result.text.top, result.text.bottom) == ("When the mock runs", "Exactly as planned")
