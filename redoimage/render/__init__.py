"""Caption rendering: font resolution, text fitting and meme overlay."""

from redoimage.render.caption_overlay import CaptionOverlayRenderer
from redoimage.render.fonts import FontFamily, resolve_font_family
from redoimage.render.text_fit import FitResult, fit

__all__ = ["CaptionOverlayRenderer", "FitResult", "FontFamily", "fit", "resolve_font_family"]
