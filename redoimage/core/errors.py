"""Error taxonomy shared by adapters, renderer and pipeline."""


class RedoImageError(Exception):
    """Base for all errors raised by this package."""


class InvalidInput(RedoImageError):
    """Request data is malformed, oversized or not a supported image. Aborts the run."""


class InvalidArgument(RedoImageError, ValueError):
    """An adapter was called with an argument it cannot use (empty prompt, non-positive word count)."""


class ServiceFailure(RedoImageError):
    """An external capability call failed (timeout, auth, rate limit, malformed response)."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ServiceUnavailable(ServiceFailure):
    """Capability failure carrying a message that is safe to show to end users."""


class RenderingFailure(RedoImageError):
    """The caption overlay renderer could not produce an image."""


class InvalidImageData(RenderingFailure):
    """Source bytes could not be decoded as a raster image."""


class PipelineCancelled(RedoImageError):
    """The caller raised the cancellation signal before the step completed."""


class CapabilityError(Exception):
    """Raised by capability implementations (HTTP or mock) when the external service fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelUnavailableError(CapabilityError):
    """The requested language model is not deployed or currently unavailable."""
