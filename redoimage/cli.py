"""Typer CLI: run the pipeline on a local image, or render a caption overlay offline."""

import contextlib
import json
import signal
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

import typer
from rich.console import Console
from rich.table import Table

from redoimage.ai.schema import (
    Description,
    MemeCaption,
    PipelineResult,
    ProcessingMode,
    ProcessingRequest,
)
from redoimage.core.config import Settings, load_settings
from redoimage.core.errors import InvalidImageData, InvalidInput, PipelineCancelled
from redoimage.core.logging import setup_logging
from redoimage.pipeline.builder import build_orchestrator
from redoimage.pipeline.validation import sniff_content_type
from redoimage.render.caption_overlay import CaptionOverlayRenderer

app = typer.Typer(no_args_is_help=True)

EXIT_FAILED = 1
EXIT_REJECTED = 2


class CliMode(str, Enum):
    regenerate = "regenerate"
    meme = "meme"


_MODES = {CliMode.regenerate: ProcessingMode.REGENERATION, CliMode.meme: ProcessingMode.MEME_GENERATION}


def _load(config_path: Path | None) -> Settings:
    try:
        return load_settings(config_path)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"Could not load config: {e}", err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_REJECTED)


@contextlib.contextmanager
def _cancel_on_signals(event: threading.Event) -> Iterator[None]:
    """Set event on SIGINT/SIGTERM while the block runs (main thread only); restore handlers after."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(_signum: int, _frame: Any) -> None:
        event.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _metrics_table(result: PipelineResult) -> Table:
    m = result.metrics
    table = Table(title=f"{result.mode.value}: {result.state.value}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Vision (ms)", str(m.vision_time_ms))
    table.add_row("Text generation (ms)", str(m.text_gen_time_ms))
    table.add_row("Visual (ms)", str(m.visual_time_ms))
    table.add_row("Total (ms)", str(m.total_time_ms))
    table.add_row("Text tokens", str(m.text_tokens_used))
    table.add_row("Synthesis tokens", str(m.tokens_used))
    if result.analysis is not None:
        table.add_row("Tags", ", ".join(result.analysis.tags) or "-")
        table.add_row("Confidence", f"{result.analysis.confidence:.2f}")
    table.add_row("Error", m.error_info or "-")
    return table


def _write_outputs(result: PipelineResult, out_dir: Path, stem: str) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    if isinstance(result.text, Description):
        path = out_dir / f"{stem}_description.txt"
        path.write_text(result.text.text + "\n")
        written.append(path)
    elif isinstance(result.text, MemeCaption):
        path = out_dir / f"{stem}_caption.txt"
        path.write_text(f"{result.text.top}\n{result.text.bottom}\n")
        written.append(path)
    if result.visual is not None:
        suffix = "meme" if result.mode == ProcessingMode.MEME_GENERATION else "regenerated"
        ext = ".jpg" if result.visual.content_type == "image/jpeg" else ".png"
        path = out_dir / f"{stem}_{suffix}{ext}"
        path.write_bytes(result.visual.data)
        written.append(path)
    return written


@app.command("process")
def process(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="JPEG or PNG image to process"),
    mode: CliMode = typer.Option(CliMode.regenerate, "--mode", "-m", help="regenerate: new image from an enhanced description; meme: caption the original."),
    words: int = typer.Option(200, "--words", "-w", help="Target description length in words (regeneration only)."),
    out_dir: Path = typer.Option(Path("."), "--out-dir", "-o", help="Directory for generated files."),
    config_path: Path | None = typer.Option(None, "--config", help="YAML config file. Defaults to REDOIMAGE_CONFIG or redoimage_config.yml."),
    mock: bool = typer.Option(False, "--mock", help="Use mock capabilities regardless of config backend."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON (image bytes omitted)."),
) -> None:
    """Analyze an image, then regenerate it or caption it as a meme."""
    settings = _load(config_path)
    flight = setup_logging(settings)
    data = image.read_bytes()
    request = ProcessingRequest(
        image_bytes=data,
        mode=_MODES[mode],
        target_description_words=words,
        content_type=sniff_content_type(data),
    )
    try:
        orchestrator = build_orchestrator(settings, backend="mock" if mock else None)
    except ValueError as e:
        typer.secho(f"Could not configure capabilities: {e}", err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_REJECTED)

    cancel = threading.Event()
    try:
        with _cancel_on_signals(cancel):
            result = orchestrator.run(request, cancel=cancel)
    except (InvalidInput, PipelineCancelled) as e:
        typer.secho(f"Rejected: {e}", err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_REJECTED)

    written = _write_outputs(result, out_dir, image.stem)
    if as_json:
        payload = result.model_dump(mode="json", exclude={"visual": {"data"}})
        payload["metrics"]["total_time_ms"] = result.metrics.total_time_ms
        payload["outputs"] = [str(p) for p in written]
        typer.echo(json.dumps(payload, indent=2))
    else:
        Console().print(_metrics_table(result))
        for path in written:
            typer.echo(f"Wrote {path}")

    if not result.succeeded:
        dump_path = flight.dump(f"run-{image.stem}")
        typer.secho(f"Run failed. Flight log written to {dump_path}", err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_FAILED)
    if result.metrics.error_info:
        typer.secho(f"Completed with fallbacks: {result.metrics.error_info}", err=True, fg=typer.colors.YELLOW)


@app.command("overlay")
def overlay(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to caption"),
    top: str = typer.Option("", "--top", help="Top caption text"),
    bottom: str = typer.Option("", "--bottom", help="Bottom caption text"),
    out: Path = typer.Option(..., "--out", help="Output PNG path"),
    config_path: Path | None = typer.Option(None, "--config", help="YAML config file."),
) -> None:
    """Render a meme caption onto an image without calling any external service."""
    settings = _load(config_path)
    setup_logging(settings)
    renderer = CaptionOverlayRenderer(settings.render)
    try:
        data = renderer.overlay(image.read_bytes(), top, bottom)
    except InvalidImageData as e:
        typer.secho(str(e), err=True, fg=typer.colors.RED)
        raise typer.Exit(EXIT_REJECTED)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    typer.secho(f"Wrote {out} (font: {renderer.font_family.name})", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
