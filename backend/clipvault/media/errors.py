"""
Ingestion error taxonomy.

Every failure the pipeline can surface is an IngestionError subclass.
Each carries a kind (the wire-level error name) and a human detail string.
The HTTP layer maps kinds to status codes; nothing else inspects them.

Only temp-file deletion errors during cleanup are swallowed (and logged).
Everything here propagates to the caller.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorKind(str, Enum):
    """Wire names for ingestion failures."""

    INVALID_INPUT = "InvalidInput"
    UNSUPPORTED_MEDIA_TYPE = "UnsupportedMediaType"
    DOWNLOAD_FAILED = "DownloadFailed"
    PROBE_FAILED = "ProbeFailed"
    TRANSCODE_FAILED = "TranscodeFailed"
    STORAGE_FAILED = "StorageFailed"
    CANCELLED = "Cancelled"


# Client errors are 400, everything the server could not finish is 500.
# 499 follows the nginx convention for a request the client walked away from.
HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: 400,
    ErrorKind.DOWNLOAD_FAILED: 500,
    ErrorKind.PROBE_FAILED: 500,
    ErrorKind.TRANSCODE_FAILED: 500,
    ErrorKind.STORAGE_FAILED: 500,
    ErrorKind.CANCELLED: 499,
}


class IngestionError(Exception):
    """
    Base exception for all ingestion failures.

    Subclasses fix the kind; callers only supply the detail.
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, details: str, *, stderr: Optional[str] = None):
        super().__init__(details)
        self.details = details
        self.stderr = stderr

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> Dict[str, str]:
        """Response body for the HTTP layer."""
        return {"error": self.kind.value, "details": self.details}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.details!r})"


class InvalidInput(IngestionError):
    """
    Malformed or contradictory request.

    - Both an upload and a remote URL (or neither)
    - Remote URL outside the allowed short-form patterns
    - Upload payload missing or empty
    """

    kind = ErrorKind.INVALID_INPUT


class UnsupportedMediaType(IngestionError):
    """Upload MIME type is not on the allow-list."""

    kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE


class DownloadFailed(IngestionError):
    """Remote fetch produced no usable file."""

    kind = ErrorKind.DOWNLOAD_FAILED


class ProbeFailed(IngestionError):
    """
    Inspector crashed, timed out, or emitted unparsable output.

    Non-fatal on the first-pass metadata probe, fatal after a transcode.
    """

    kind = ErrorKind.PROBE_FAILED


class TranscodeFailed(IngestionError):
    """Encoder crashed, timed out, or produced an empty output."""

    kind = ErrorKind.TRANSCODE_FAILED


class StorageFailed(IngestionError):
    """Catalog read/write error, or the final file vanished before commit."""

    kind = ErrorKind.STORAGE_FAILED


class Cancelled(IngestionError):
    """The inbound request was aborted; outputs were discarded."""

    kind = ErrorKind.CANCELLED
