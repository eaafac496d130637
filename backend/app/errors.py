"""
Error taxonomy for the document lifecycle.

Every failure raised by the registry and its storage collaborators is a
DocumentError carrying a stable ``kind``, a human message, optional structured
details and the underlying cause. The HTTP layer maps kinds to status codes
(see ``app.main``); storage inconsistencies and transient failures only ever
reach clients with a generic message.
"""
from typing import Any


class DocumentError(Exception):
    kind = "document_error"
    status_code = 500
    public_message: str | None = None

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Client-facing body. Internal details are never included."""
        return {
            "error": self.kind,
            "detail": self.public_message or self.message,
        }

    def __str__(self) -> str:
        base = f"[{self.kind}] {self.message}"
        if self.details:
            base += f" | details: {self.details}"
        return base


class ValidationError(DocumentError):
    """Missing or malformed input. Raised before any storage side effect."""

    kind = "validation_error"
    status_code = 400


class PayloadTooLargeError(ValidationError):
    status_code = 413


class UnsupportedMediaTypeError(ValidationError):
    status_code = 415


class ConflictError(DocumentError):
    kind = "conflict"
    status_code = 409


class NotFoundError(DocumentError):
    kind = "not_found"
    status_code = 404


class StorageInconsistencyError(DocumentError):
    """Metadata and physical storage disagree (row without blob or the reverse)."""

    kind = "storage_inconsistency"
    status_code = 500
    public_message = "The stored file is unavailable. Please contact support."


class TransientIOError(DocumentError):
    """Disk or database temporarily unavailable. Safe for the caller to retry."""

    kind = "transient_io_error"
    status_code = 503
    public_message = "Storage is temporarily unavailable. Please try again."
