"""Error taxonomy for the ePaper pipeline."""

from typing import Any


class EpaperError(Exception):
    """Base exception for all pipeline errors."""

    kind = "ERROR"

    def __init__(self, message: str, code: str | None = None, *args, **kwargs):
        self.message = message
        self.code = code
        super().__init__(message, *args, **kwargs)


class ValidationError(EpaperError):
    """Raised when input is rejected before any side effect."""

    kind = "VALIDATION"


class SizeLimitError(ValidationError):
    """Raised when an intake payload exceeds the configured ceiling."""

    kind = "SIZE_LIMIT"

    def __init__(self, message: str = "PDF too large", max_bytes: int | None = None):
        self.max_bytes = max_bytes
        super().__init__(message, code="PDF_TOO_LARGE")


class UnsupportedTypeError(ValidationError):
    """Raised when an intake payload is not a PDF."""

    kind = "UNSUPPORTED_TYPE"


class NotFoundError(EpaperError):
    """Raised for unknown or tenant-mismatched resources."""

    kind = "NOT_FOUND"


class UpstreamError(EpaperError):
    """Raised when an external collaborator fails."""

    kind = "UPSTREAM_FAILURE"


class RasterizationError(UpstreamError):
    """Raised when the rasterizer fails or produces no pages."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
        *args,
        **kwargs,
    ):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message, "RASTERIZATION_FAILED", *args, **kwargs)


class EncodingError(UpstreamError):
    """Raised when a derivative image cannot be encoded."""


class StorageError(UpstreamError):
    """Raised when an object storage write, read or delete fails."""

    def __init__(self, message: str, key: str | None = None, *args, **kwargs):
        self.key = key
        super().__init__(message, "STORAGE_FAILED", *args, **kwargs)


class FetchError(UpstreamError):
    """Raised when a remote PDF cannot be downloaded."""


def error_response(
    exc: BaseException, fallback_message: str, production: bool = False
) -> dict[str, Any]:
    """Shape an exception into a caller-facing error payload.

    Known pipeline errors carry their own message and code. Anything else
    is reported with the fallback message; the original detail is only
    included outside production.

    Args:
        exc: The exception raised by a pipeline operation
        fallback_message: Message used for unexpected failures
        production: Whether the caller runs in a production context

    Returns:
        Dictionary with error, code and kind (and details when allowed)
    """
    if isinstance(exc, (ValidationError, NotFoundError)):
        return {"error": exc.message, "code": exc.code, "kind": exc.kind}

    if isinstance(exc, EpaperError):
        payload: dict[str, Any] = {
            "error": fallback_message,
            "code": exc.code,
            "kind": exc.kind,
        }
    else:
        payload = {"error": fallback_message, "code": None, "kind": EpaperError.kind}

    if not production:
        payload["details"] = str(exc)
    return payload
