"""Text fit calculator: largest font size that keeps a caption on one line inside a box."""

from dataclasses import dataclass
from typing import Iterator

from redoimage.render.fonts import Font, FontFamily

DEFAULT_STEP = 2.0
_HEIGHT_SAMPLE = "AQgjy"


@dataclass(frozen=True)
class FitResult:
    font_size: float
    wrapped: bool


def line_height(font: Font, stroke_width: int = 0) -> int:
    """Height of one line of text including outline, from the font's glyph bounding boxes."""
    left, top, right, bottom = font.getbbox(_HEIGHT_SAMPLE, stroke_width=stroke_width)
    return int(bottom - top)


def stroke_width_for(font_size: float, min_stroke_width: int) -> int:
    """Outline width drawn around a caption at font_size."""
    return max(min_stroke_width, int(font_size // 8))


def _candidate_sizes(max_font_size: float, min_font_size: float, step: float) -> Iterator[float]:
    """max, max-step, ... down to min; min itself is always the last candidate."""
    size = max_font_size
    while size > min_font_size:
        yield size
        size -= step
    yield min_font_size


def fit(
    text: str,
    max_width: float,
    max_height: float,
    min_font_size: float,
    max_font_size: float,
    font_family: FontFamily,
    step: float = DEFAULT_STEP,
    min_stroke_width: int | None = None,
) -> FitResult:
    """
    Linear descent from max_font_size in fixed steps; the first size whose single-line advance
    width fits max_width (and whose line height fits max_height) wins.

    With min_stroke_width set, each candidate is measured with the outline it will be drawn
    with (stroke_width_for), so the stroke on both ends stays inside max_width.

    When max_font_size is below min_font_size the minimum wins. When nothing fits, returns
    (min_font_size, wrapped=True): the caller wraps at that size and accepts overflow.
    """
    if not text or not text.strip():
        return FitResult(font_size=max_font_size, wrapped=False)
    if step <= 0:
        raise ValueError("step must be positive")

    top = max(max_font_size, min_font_size)
    for size in _candidate_sizes(top, min_font_size, step):
        font = font_family.at(size)
        stroke = 0 if min_stroke_width is None else stroke_width_for(size, min_stroke_width)
        if font.getlength(text) + 2 * stroke <= max_width and line_height(font, stroke) <= max_height:
            return FitResult(font_size=size, wrapped=False)
    return FitResult(font_size=min_font_size, wrapped=True)


def wrap_lines(text: str, font: Font, max_width: float) -> list[str]:
    """Greedy word wrap by measured width. A word wider than max_width gets a line to itself."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if not current or font.getlength(candidate) <= max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines
