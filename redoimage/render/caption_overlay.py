"""Caption overlay renderer: classic two-zone meme text on a copy of the source image."""

import io
import logging

from PIL import Image, ImageDraw, UnidentifiedImageError

from redoimage.core.config import RenderConfig
from redoimage.core.errors import InvalidImageData
from redoimage.render.fonts import FontFamily, resolve_font_family
from redoimage.render.text_fit import fit, line_height, stroke_width_for, wrap_lines

_log = logging.getLogger(__name__)

FILL = "white"
OUTLINE = "black"
LINE_SPACING = 0.1


def decode_image(data: bytes) -> Image.Image:
    """Decode bytes into an RGB or RGBA image. Raises InvalidImageData on corrupt or unsupported data."""
    if not data:
        raise InvalidImageData("Image data cannot be empty")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        if img.mode in ("RGB", "RGBA"):
            return img
        if img.mode in ("LA", "PA") or "transparency" in img.info:
            return img.convert("RGBA")
        return img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise InvalidImageData(f"Could not decode image: {e}") from e


def encode_png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


class CaptionOverlayRenderer:
    """
    Draws an uppercase top and bottom caption onto an image and returns PNG bytes.

    The top zone is taller than the bottom zone so wrapped multi-line top text has room.
    Output dimensions always equal input dimensions.
    """

    def __init__(self, config: RenderConfig, font_family: FontFamily | None = None) -> None:
        self._config = config
        self._fonts = font_family or resolve_font_family(config)

    @property
    def font_family(self) -> FontFamily:
        return self._fonts

    def overlay(self, image: bytes, top_text: str | None, bottom_text: str | None) -> bytes:
        img = decode_image(image)
        top = (top_text or "").strip()
        bottom = (bottom_text or "").strip()
        _log.info("Adding meme caption. Top: %r, Bottom: %r", top or "(none)", bottom or "(none)")

        if top or bottom:
            draw = ImageDraw.Draw(img)
            if top:
                self._draw_caption(draw, top.upper(), img.width, img.height, is_top=True)
            if bottom:
                self._draw_caption(draw, bottom.upper(), img.width, img.height, is_top=False)

        result = encode_png(img)
        _log.info("Meme generated. Output size: %s bytes", len(result))
        return result

    def _draw_caption(self, draw: ImageDraw.ImageDraw, text: str, width: int, height: int, is_top: bool) -> None:
        cfg = self._config
        pad_x = width * cfg.horizontal_padding_fraction
        pad_y = height * cfg.vertical_padding_fraction
        box_width = max(1.0, width - 2 * pad_x)
        zone_fraction = cfg.top_zone_fraction if is_top else cfg.bottom_zone_fraction
        zone_height = max(1.0, height * zone_fraction - pad_y)
        max_font = height / cfg.max_font_divisor
        min_font = max(cfg.min_font_size, height / cfg.min_font_divisor)

        result = fit(
            text,
            box_width,
            zone_height,
            min_font,
            max_font,
            self._fonts,
            step=cfg.font_step,
            min_stroke_width=cfg.min_stroke_width,
        )
        font = self._fonts.at(result.font_size)
        stroke = stroke_width_for(result.font_size, cfg.min_stroke_width)
        lines = wrap_lines(text, font, max(1.0, box_width - 2 * stroke)) if result.wrapped else [text]

        step = line_height(font, stroke)
        spacing = int(step * LINE_SPACING)
        block_height = len(lines) * step + (len(lines) - 1) * spacing
        if block_height > zone_height:
            _log.debug("Caption block %spx overflows %s zone of %.0fpx", block_height, "top" if is_top else "bottom", zone_height)

        # Top text grows downward from the padding; bottom text grows upward from the bottom padding.
        y = pad_y if is_top else height - pad_y - block_height
        for line in lines:
            x = (width - font.getlength(line)) / 2
            draw.text((x, y), line, font=font, fill=FILL, stroke_width=stroke, stroke_fill=OUTLINE)
            y += step + spacing
        _log.debug(
            "Drew meme text %r at %s: size=%.1f wrapped=%s lines=%s",
            text,
            "top" if is_top else "bottom",
            result.font_size,
            result.wrapped,
            len(lines),
        )
