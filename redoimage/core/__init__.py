from redoimage.core.config import Settings, load_settings
from redoimage.core.logging import setup_logging

__all__ = ["Settings", "load_settings", "setup_logging"]
