"""Font resolution: preferred display font, then bold sans-serif candidates, then Pillow's bundled default."""

import logging
from functools import lru_cache

from PIL import ImageFont

from redoimage.core.config import RenderConfig

_log = logging.getLogger(__name__)

Font = ImageFont.FreeTypeFont | ImageFont.ImageFont


@lru_cache(maxsize=256)
def _load_font(path: str | None, size: float) -> Font:
    if path is None:
        return ImageFont.load_default(size=size)
    return ImageFont.truetype(path, size=size)


class FontFamily:
    """A resolved font file (or the bundled default) that can be instantiated at any size."""

    def __init__(self, path: str | None, name: str) -> None:
        self.path = path
        self.name = name

    @property
    def is_default(self) -> bool:
        return self.path is None

    def at(self, size: float) -> Font:
        """Return the font at size (cached; safe to call from many threads)."""
        return _load_font(self.path, max(1.0, float(size)))

    def __repr__(self) -> str:
        return f"FontFamily({self.name!r})"


def _loadable(candidate: str) -> bool:
    """True if Pillow can open candidate (absolute path or a file name found in system font dirs)."""
    try:
        ImageFont.truetype(candidate, size=12)
    except OSError:
        return False
    return True


def resolve_font_family(config: RenderConfig) -> FontFamily:
    """
    Resolve the caption font.

    Missing fonts degrade quality but never fail: the preferred font is tried first, then each
    configured bold sans-serif fallback, then Pillow's bundled default font.
    """
    if _loadable(config.preferred_font):
        return FontFamily(config.preferred_font, config.preferred_font)
    for candidate in config.fallback_fonts:
        if _loadable(candidate):
            _log.warning("Font %s not available, falling back to %s", config.preferred_font, candidate)
            return FontFamily(candidate, candidate)
    _log.warning(
        "No configured fonts available (%s); using Pillow's bundled default font",
        ", ".join([config.preferred_font, *config.fallback_fonts]),
    )
    return FontFamily(None, "pillow-default")
