"""Error taxonomy for the sync engine and its collaborators.

Every error raised on purpose by this package derives from ``SyncError``
and carries a ``kind`` so callers can decide how to surface it:

- ``NetworkError`` -- transport failure or non-2xx response.
- ``ParseError`` -- a response body that could not be decoded.
- ``StoreError`` -- a local file-store operation that failed.
- ``AttachmentError`` -- an attachment could not be fetched or written.

Merge conflicts are not errors; they are resolved by forking.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync errors."""

    kind = "unknown"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NetworkError(SyncError):
    """The remote note service could not be reached or rejected a call.

    Attributes:
        status: HTTP status code, or ``None`` for connection failures.
    """

    kind = "network"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ParseError(SyncError):
    """A remote payload could not be decoded or validated."""

    kind = "parse"


class StoreError(SyncError):
    """A local file-store operation failed.

    Attributes:
        path: The store path involved, when known.
    """

    kind = "io"

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class AttachmentError(SyncError):
    """Fetching or writing one attachment failed."""

    kind = "attachment"

    def __init__(self, message: str, reference: str | None = None) -> None:
        super().__init__(message)
        self.reference = reference


def to_user_message(exc: BaseException) -> str:
    """Render a short, user-facing description of *exc*."""
    match exc:
        case NetworkError(status=int() as status):
            return f"Network error (status {status})"
        case NetworkError():
            return "Network error"
        case ParseError():
            return "Failed to parse server response"
        case StoreError(path=str() as path):
            return f"File error at {path}"
        case StoreError():
            return "File error"
        case AttachmentError(reference=str() as reference):
            return f"Attachment error for {reference}"
        case _:
            return str(exc) or "An unexpected error occurred"
