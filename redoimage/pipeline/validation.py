"""Request validation for the Validating state: size limits, magic-byte sniffing, word range."""

import logging

from redoimage.ai.schema import ProcessingMode, ProcessingRequest
from redoimage.core.config import PipelineConfig
from redoimage.core.errors import InvalidInput

_log = logging.getLogger(__name__)

JPEG_MAGIC = b"\xff\xd8\xff"
# First 4 bytes are enough to identify PNG unambiguously.
PNG_MAGIC = b"\x89PNG"


def sniff_content_type(data: bytes) -> str | None:
    """Return 'image/jpeg' or 'image/png' from the leading bytes, or None when neither matches."""
    if data.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if data.startswith(PNG_MAGIC):
        return "image/png"
    return None


def validate_request(request: ProcessingRequest, config: PipelineConfig) -> str:
    """
    Reject requests that must never reach an external service. Returns the sniffed content type.

    The declared content type is only checked against the allow-list; the sniffed type is
    authoritative for what the bytes are.
    """
    size = len(request.image_bytes)
    if size == 0:
        raise InvalidInput("Image data is required")
    if size > config.max_image_bytes:
        raise InvalidInput(
            f"File size exceeds the maximum allowed ({config.max_image_bytes // 1024 // 1024}MB)."
        )
    if request.content_type is not None and request.content_type not in config.allowed_content_types:
        raise InvalidInput("Only JPG and PNG files are supported.")

    sniffed = sniff_content_type(request.image_bytes)
    if sniffed is None or sniffed not in config.allowed_content_types:
        raise InvalidInput("The uploaded file is not a valid JPEG or PNG image.")
    if request.content_type is not None and request.content_type != sniffed:
        _log.warning("Declared content type %s does not match sniffed %s", request.content_type, sniffed)

    if request.mode == ProcessingMode.REGENERATION:
        words = request.target_description_words
        if not config.min_target_words <= words <= config.max_target_words:
            raise InvalidInput(
                f"Description length must be between {config.min_target_words} and "
                f"{config.max_target_words}. Provided: {words}"
            )
    return sniffed
