"""Pipeline orchestrator: the per-request state machine.

VALIDATING -> ANALYZING -> GENERATING_TEXT -> GENERATING_VISUAL -> ASSEMBLING -> COMPLETED | FAILED

Validation failures raise InvalidInput. Analysis failures end the run FAILED with metrics only.
Text and visual failures degrade: text falls back to a deterministic placeholder, the visual
artifact is left empty, and the run still completes. error_info keeps the first failure.
"""

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, assert_never

from redoimage.ai.image_synthesis import ImageSynthesisAdapter
from redoimage.ai.schema import (
    AnalysisResult,
    Description,
    MemeCaption,
    OverlayImage,
    PipelineResult,
    PipelineState,
    ProcessingMetrics,
    ProcessingMode,
    ProcessingRequest,
    SynthesizedImage,
)
from redoimage.ai.text_generation import FALLBACK_BOTTOM, FALLBACK_TOP, TextGenerationAdapter
from redoimage.ai.vision import VisionAnalysisAdapter
from redoimage.core.config import PipelineConfig
from redoimage.core.errors import PipelineCancelled
from redoimage.pipeline.validation import validate_request
from redoimage.render.caption_overlay import CaptionOverlayRenderer

_log = logging.getLogger(__name__)

T = TypeVar("T")

CANCEL_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Step failed; value is the substitute the pipeline continues with (None when there is none)."""

    value: T
    cause: BaseException


StepOutcome = Ok[T] | Degraded[T]


def fallback_description(tags: list[str]) -> str:
    return f"Image contains: {', '.join(tags)}"


class PipelineOrchestrator:
    """
    Runs one request through the state machine. Holds no per-request state, so a single
    instance may serve many concurrent runs from different threads.
    """

    def __init__(
        self,
        vision: VisionAnalysisAdapter,
        text: TextGenerationAdapter,
        synthesis: ImageSynthesisAdapter,
        renderer: CaptionOverlayRenderer,
        config: PipelineConfig,
        cancel_poll_seconds: float = CANCEL_POLL_SECONDS,
    ) -> None:
        self._vision = vision
        self._text = text
        self._synthesis = synthesis
        self._renderer = renderer
        self._config = config
        self._poll = cancel_poll_seconds

    def run(self, request: ProcessingRequest, cancel: threading.Event | None = None) -> PipelineResult:
        """
        Process one request. Raises InvalidInput (or PipelineCancelled) when the request is rejected
        before analysis; otherwise always returns a PipelineResult.
        """
        run_id = uuid.uuid4().hex[:12]
        started = time.perf_counter()
        self._enter(run_id, PipelineState.VALIDATING)
        if cancel is not None and cancel.is_set():
            raise PipelineCancelled("Run cancelled before validation")
        validate_request(request, self._config)

        metrics = ProcessingMetrics()
        try:
            result = self._execute(run_id, request, metrics, cancel)
        except Exception as e:
            _log.error("Run %s: unexpected pipeline error", run_id, exc_info=True)
            metrics.record_error(f"Unexpected pipeline error: {e}")
            result = PipelineResult(state=PipelineState.FAILED, mode=request.mode, metrics=metrics)

        self._enter(run_id, result.state)
        _log.info(
            "Run %s finished %s in %sms (mode=%s, error=%s)",
            run_id,
            result.state.value,
            int((time.perf_counter() - started) * 1000),
            request.mode.value,
            metrics.error_info,
        )
        return result

    def _execute(
        self,
        run_id: str,
        request: ProcessingRequest,
        metrics: ProcessingMetrics,
        cancel: threading.Event | None,
    ) -> PipelineResult:
        self._enter(run_id, PipelineState.ANALYZING)
        analyzed = self._attempt(run_id, "Vision analysis failed", metrics, cancel, self._vision.analyze, request.image_bytes)
        if isinstance(analyzed, Degraded):
            return PipelineResult(state=PipelineState.FAILED, mode=request.mode, metrics=metrics)
        analysis: AnalysisResult = analyzed.value
        metrics.vision_time_ms = analysis.elapsed_ms

        self._enter(run_id, PipelineState.GENERATING_TEXT)
        text = self._generate_text(run_id, request, analysis, metrics, cancel).value

        self._enter(run_id, PipelineState.GENERATING_VISUAL)
        visual = self._generate_visual(run_id, request, text, metrics, cancel).value

        self._enter(run_id, PipelineState.ASSEMBLING)
        return PipelineResult(
            state=PipelineState.COMPLETED,
            mode=request.mode,
            analysis=analysis,
            text=text,
            visual=visual,
            metrics=metrics,
        )

    def _generate_text(
        self,
        run_id: str,
        request: ProcessingRequest,
        analysis: AnalysisResult,
        metrics: ProcessingMetrics,
        cancel: threading.Event | None,
    ) -> StepOutcome[Description] | StepOutcome[MemeCaption]:
        match request.mode:
            case ProcessingMode.REGENERATION:
                outcome = self._attempt(
                    run_id,
                    "Description generation failed",
                    metrics,
                    cancel,
                    self._text.enhance_description,
                    analysis.tags,
                    request.target_description_words,
                    analysis.caption,
                    analysis.confidence,
                )
                if isinstance(outcome, Degraded):
                    return Degraded(Description(text=fallback_description(analysis.tags)), outcome.cause)
            case ProcessingMode.MEME_GENERATION:
                outcome = self._attempt(
                    run_id,
                    "Meme caption generation failed",
                    metrics,
                    cancel,
                    self._text.generate_meme_caption,
                    analysis.tags,
                    analysis.confidence,
                )
                if isinstance(outcome, Degraded):
                    return Degraded(MemeCaption(top=FALLBACK_TOP, bottom=FALLBACK_BOTTOM), outcome.cause)
            case _:
                assert_never(request.mode)

        metrics.text_gen_time_ms = outcome.value.elapsed_ms
        metrics.text_tokens_used = outcome.value.tokens
        return outcome

    def _generate_visual(
        self,
        run_id: str,
        request: ProcessingRequest,
        text: Description | MemeCaption,
        metrics: ProcessingMetrics,
        cancel: threading.Event | None,
    ) -> StepOutcome[SynthesizedImage | OverlayImage | None]:
        match text:
            case Description(text=prompt):
                outcome = self._attempt(
                    run_id, "Image generation failed", metrics, cancel, self._synthesis.synthesize, prompt
                )
                if isinstance(outcome, Ok):
                    metrics.tokens_used = outcome.value.tokens
            case MemeCaption(top=top, bottom=bottom):
                outcome = self._attempt(
                    run_id,
                    "Meme image generation failed",
                    metrics,
                    cancel,
                    self._render_overlay,
                    request.image_bytes,
                    top,
                    bottom,
                )
            case _:
                assert_never(text)

        if isinstance(outcome, Ok):
            metrics.visual_time_ms = outcome.value.elapsed_ms
        return outcome

    def _render_overlay(self, image: bytes, top: str, bottom: str) -> OverlayImage:
        started = time.perf_counter()
        data = self._renderer.overlay(image, top, bottom)
        return OverlayImage(data=data, elapsed_ms=int((time.perf_counter() - started) * 1000))

    def _attempt(
        self,
        run_id: str,
        label: str,
        metrics: ProcessingMetrics,
        cancel: threading.Event | None,
        fn: Callable[..., T],
        *args: object,
    ) -> StepOutcome[T] | Degraded[None]:
        """Run one step; on any error log it, record it (first failure wins) and return Degraded."""
        try:
            return Ok(self._call(fn, args, cancel))
        except Exception as e:
            _log.error("Run %s: %s", run_id, label, exc_info=e)
            if not metrics.record_error(f"{label}: {e}"):
                _log.info("Run %s: keeping earlier error_info; %s", run_id, label)
            return Degraded(None, e)

    def _call(self, fn: Callable[..., T], args: tuple, cancel: threading.Event | None) -> T:
        """
        Call fn(*args). With a cancel event, the call runs on a request-scoped worker thread
        and PipelineCancelled is raised if the event is set before it completes.
        """
        if cancel is None:
            return fn(*args)
        if cancel.is_set():
            raise PipelineCancelled("Cancelled before step started")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="redoimage-step")
        try:
            future = executor.submit(fn, *args)
            while not future.done():
                done, _ = wait([future], timeout=self._poll)
                if not done and cancel.is_set():
                    future.cancel()
                    raise PipelineCancelled("Cancelled while waiting for step to complete")
            return future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _enter(run_id: str, state: PipelineState) -> None:
        _log.debug("Run %s: %s", run_id, state.value)
