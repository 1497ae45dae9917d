"""Image regeneration and meme captioning pipeline."""

__version__ = "0.1.0"
